from __future__ import annotations

"""
cds_extractor/cds_object.py

Modelo de entradas del ContentDirectory + parseo de respuestas Browse.

- CatalogEntry: vista tipada sobre un TagMap (id, parentID, container/item).
- parse_direct_children(): Result de BrowseDirectChildren -> lista de entradas.
- parse_metadata(): Result de BrowseMetadata -> primera entrada válida o None.
- Description / BrowseResult: unidad devuelta por el transporte por cada Browse.

Política de errores
-------------------
- Un elemento mal formado (sin id/parentID, tag raíz desconocido) se loguea y se salta.
- Un documento mal formado se loguea y devuelve lista vacía (nunca un lote parcial).
"""

from dataclasses import dataclass, field
from typing import Final

from lxml import etree

from cds_extractor import logger as _logger
from cds_extractor.run_metrics import METRICS
from cds_extractor.tag import ROOT_TAG_NAME, Tag, TagMap, qualified_name

ID: Final[str] = "@id"
PARENT_ID: Final[str] = "@parentID"
DC_TITLE: Final[str] = "dc:title"
UPNP_CLASS: Final[str] = "upnp:class"

CONTAINER: Final[str] = "container"
ITEM: Final[str] = "item"


class InvalidEntryError(ValueError):
    """Elemento DIDL-Lite que no representa una entrada válida."""


def parse_int_safely(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


# =============================================================================
# CatalogEntry
# =============================================================================


class CatalogEntry:
    """
    Entrada (item o container) de un ContentDirectory.

    El tag raíz se guarda bajo la clave "" del TagMap, de modo que sus atributos
    se consultan como "@id", "@parentID", "@restricted", etc.
    """

    __slots__ = ("_server_id", "_root_tag", "_tag_map", "_object_id", "_parent_id", "_is_container")

    def __init__(self, server_id: str, element: etree._Element) -> None:
        root_name = qualified_name(element)
        if root_name not in (CONTAINER, ITEM):
            raise InvalidEntryError(f"unexpected root tag: {root_name!r}")

        tag_map = TagMap()
        root_tag = Tag.from_element(element, is_root=True)
        tag_map.put_tag(ROOT_TAG_NAME, root_tag)
        for child in element:
            if not isinstance(child.tag, str):
                continue
            tag_map.put_tag(qualified_name(child), Tag.from_element(child))

        object_id = tag_map.get_value(ID)
        if not object_id:
            raise InvalidEntryError("missing @id")
        parent_id = tag_map.get_value(PARENT_ID)
        if not parent_id:
            raise InvalidEntryError(f"missing @parentID (id={object_id!r})")

        self._server_id = server_id
        self._root_tag = root_tag
        self._tag_map = tag_map
        self._object_id = object_id
        self._parent_id = parent_id
        self._is_container = root_name == CONTAINER

    # ---------------------------------------------------------------------
    # Identidad
    # ---------------------------------------------------------------------

    @property
    def server_id(self) -> str:
        """UDN del MediaServer del que procede la entrada."""
        return self._server_id

    @property
    def object_id(self) -> str:
        return self._object_id

    @property
    def parent_id(self) -> str:
        return self._parent_id

    @property
    def is_container(self) -> bool:
        return self._is_container

    @property
    def is_item(self) -> bool:
        return not self._is_container

    @property
    def root_tag(self) -> Tag:
        return self._root_tag

    @property
    def tag_map(self) -> TagMap:
        return self._tag_map

    # ---------------------------------------------------------------------
    # Lookups opacos
    # ---------------------------------------------------------------------

    @property
    def title(self) -> str | None:
        return self._tag_map.get_value(DC_TITLE)

    @property
    def upnp_class(self) -> str | None:
        return self._tag_map.get_value(UPNP_CLASS)

    def get_value(self, xpath: str, index: int = 0) -> str | None:
        return self._tag_map.get_value(xpath, index)

    def get_int_value(self, xpath: str, default: int, index: int = 0) -> int:
        return parse_int_safely(self._tag_map.get_value(xpath, index), default)

    def get_tag(self, tag_name: str, index: int = 0) -> Tag | None:
        return self._tag_map.get_tag(tag_name, index)

    def get_tag_list(self, tag_name: str) -> list[Tag] | None:
        return self._tag_map.get_tag_list(tag_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CatalogEntry):
            return NotImplemented
        return self._server_id == other._server_id and self._tag_map == other._tag_map

    def __hash__(self) -> int:
        return hash((self._server_id, self._tag_map))

    def __repr__(self) -> str:
        kind = CONTAINER if self._is_container else ITEM
        return f"CatalogEntry({kind} id={self._object_id!r} parent={self._parent_id!r} title={self.title!r})"

    def __str__(self) -> str:
        return str(self._tag_map)


# =============================================================================
# Resultado de Browse
# =============================================================================


@dataclass(frozen=True, slots=True)
class Description:
    """Un documento DIDL-Lite crudo que cubre los hijos [start, start + count)."""

    start: int
    count: int
    xml: str

    @property
    def end(self) -> int:
        return self.start + self.count - 1


@dataclass(frozen=True, slots=True)
class BrowseResult:
    entries: list[CatalogEntry] = field(default_factory=list)
    descriptions: list[Description] = field(default_factory=list)


# =============================================================================
# Factory
# =============================================================================


def _new_parser() -> etree.XMLParser:
    # Un parser por llamada: los XMLParser de lxml no se comparten entre hilos.
    return etree.XMLParser(encoding="utf-8", resolve_entities=False, no_network=True)


def _parse_document(xml: str) -> etree._Element:
    return etree.fromstring(xml.encode("utf-8"), parser=_new_parser())


def _create_entry(server_id: str, element: etree._Element) -> CatalogEntry | None:
    try:
        return CatalogEntry(server_id, element)
    except InvalidEntryError as exc:
        METRICS.incr("cds.parse.skipped_entries")
        _logger.warning(f"[CDS] Entrada ignorada ({server_id}): {exc}")
        _logger.debug_ctx("CDS", _logger.truncate_line(etree.tostring(element, encoding="unicode")))
        return None


def _iter_entry_elements(xml: str) -> list[etree._Element] | None:
    try:
        root = _parse_document(xml)
    except (etree.XMLSyntaxError, ValueError) as exc:
        METRICS.incr("cds.parse.batch_errors")
        _logger.warning(f"[CDS] DIDL-Lite no parseable: {exc!r}")
        _logger.debug_ctx("CDS", _logger.truncate_line(xml))
        return None
    return [child for child in root if isinstance(child.tag, str)]


def parse_direct_children(server_id: str, xml: str | None) -> list[CatalogEntry]:
    """
    Result de BrowseDirectChildren -> entradas válidas, en orden de documento.

    Entrada vacía o documento mal formado -> [].
    """
    if not xml:
        return []
    elements = _iter_entry_elements(xml)
    if elements is None:
        return []

    out: list[CatalogEntry] = []
    for element in elements:
        entry = _create_entry(server_id, element)
        if entry is not None:
            out.append(entry)
    return out


def parse_metadata(server_id: str, xml: str | None) -> CatalogEntry | None:
    """Result de BrowseMetadata -> primera entrada construible o None."""
    if not xml:
        return None
    elements = _iter_entry_elements(xml)
    if elements is None:
        return None

    for element in elements:
        entry = _create_entry(server_id, element)
        if entry is not None:
            return entry
    return None


__all__ = [
    "BrowseResult",
    "CatalogEntry",
    "Description",
    "InvalidEntryError",
    "parse_direct_children",
    "parse_int_safely",
    "parse_metadata",
]
