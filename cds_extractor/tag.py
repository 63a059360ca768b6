from __future__ import annotations

"""
cds_extractor/tag.py

Aplanado de XML DIDL-Lite (no anidado) a una estructura indexable.

- Tag: un elemento (nombre cualificado, texto, atributos en orden de documento).
- TagMap: multi-mapa ordenado nombre -> ocurrencias, con accesor "XPath-lite":

    "dc:title"          -> texto de la ocurrencia `index`
    "res@protocolInfo"  -> atributo de la ocurrencia `index` (sin fallback a otras)
    "@id"               -> atributo del tag raíz (guardado bajo la clave "")

Los nombres se conservan con su prefijo tal cual aparece en el documento
("dc:title", "upnp:class"), que es como los referencia cualquier cliente UPnP.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Final

from lxml import etree

ROOT_TAG_NAME: Final[str] = ""

_XML_NS: Final[str] = "http://www.w3.org/XML/1998/namespace"


# =============================================================================
# Nombres cualificados (prefijo:local) desde lxml
# =============================================================================


def qualified_name(element: etree._Element) -> str:
    """Nombre del elemento con su prefijo de documento ("dc:title")."""
    local = etree.QName(element).localname
    prefix = element.prefix
    return f"{prefix}:{local}" if prefix else local


def _qualified_attr_name(element: etree._Element, key: str) -> str:
    if not key.startswith("{"):
        return key
    qn = etree.QName(key)
    if qn.namespace == _XML_NS:
        return f"xml:{qn.localname}"
    for prefix, uri in element.nsmap.items():
        if prefix and uri == qn.namespace:
            return f"{prefix}:{qn.localname}"
    return qn.localname


# =============================================================================
# Tag
# =============================================================================


@dataclass(frozen=True, slots=True)
class Tag:
    """Representación inmutable de un elemento XML sin hijos relevantes."""

    name: str
    value: str
    attributes: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_element(cls, element: etree._Element, *, is_root: bool = False) -> Tag:
        """
        Construye el Tag de `element`.

        En el tag raíz (item/container) el valor se fuerza a "": su "contenido"
        son los hijos, no el texto.
        """
        value = "" if is_root else "".join(element.itertext())
        attrs = tuple((_qualified_attr_name(element, k), v) for k, v in element.attrib.items())
        return cls(name=qualified_name(element), value=value, attributes=attrs)

    def get_attribute(self, name: str) -> str | None:
        for k, v in self.attributes:
            if k == name:
                return v
        return None

    def __str__(self) -> str:
        return self.value + "".join(f"\n@{k} => {v}" for k, v in self.attributes)


# =============================================================================
# TagMap
# =============================================================================


class TagMap:
    """
    Multi-mapa ordenado de Tags.

    - El orden de inserción de nombres distintos se conserva.
    - Las ocurrencias de un mismo nombre se guardan en orden de documento.
    """

    __slots__ = ("_tags",)

    def __init__(self) -> None:
        self._tags: dict[str, list[Tag]] = {}

    def put_tag(self, name: str, tag: Tag) -> None:
        self._tags.setdefault(name, []).append(tag)

    # ---------------------------------------------------------------------
    # Accesores
    # ---------------------------------------------------------------------

    def get_value(self, xpath: str, index: int = 0) -> str | None:
        """
        Resuelve una clave XPath-lite: "tag", "tag@attr" o "@attr".

        El atributo se lee SIEMPRE de la ocurrencia `index`; si esa ocurrencia
        no lo tiene el resultado es None aunque otra ocurrencia sí lo tenga.
        """
        if not xpath:
            return self.get_attribute_value(ROOT_TAG_NAME, "", index)
        tag_name, sep, attr_name = xpath.partition("@")
        if not sep:
            return self.get_attribute_value(xpath, "", index)
        return self.get_attribute_value(tag_name, attr_name, index)

    def get_attribute_value(self, tag_name: str | None, attr_name: str | None, index: int = 0) -> str | None:
        tag = self.get_tag(tag_name, index)
        if tag is None:
            return None
        if not attr_name:
            return tag.value
        return tag.get_attribute(attr_name)

    def get_tag(self, tag_name: str | None, index: int = 0) -> Tag | None:
        tags = self._tags.get(tag_name or ROOT_TAG_NAME)
        if tags is None or index < 0 or index >= len(tags):
            return None
        return tags[index]

    def get_tag_list(self, tag_name: str | None) -> list[Tag] | None:
        tags = self._tags.get(tag_name or ROOT_TAG_NAME)
        return None if tags is None else list(tags)

    def names(self) -> list[str]:
        return list(self._tags)

    # ---------------------------------------------------------------------
    # Dunder
    # ---------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._tags

    def __len__(self) -> int:
        return len(self._tags)

    def __iter__(self) -> Iterator[tuple[str, Tag]]:
        for name, tags in self._tags.items():
            for tag in tags:
                yield name, tag

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagMap):
            return NotImplemented
        return self._tags == other._tags

    def __hash__(self) -> int:
        return hash(tuple((name, tuple(tags)) for name, tags in self._tags.items()))

    def __repr__(self) -> str:
        return f"TagMap(names={self.names()!r})"

    def __str__(self) -> str:
        lines: list[str] = []
        for name, tags in self._tags.items():
            multi = len(tags) > 1
            for i, tag in enumerate(tags):
                label = f"{name}[{i}]" if multi else name
                lines.append(f"{label} => {tag.value}\n")
                lines.extend(f"      @{k} => {v}\n" for k, v in tag.attributes)
        return "".join(lines)
