from __future__ import annotations

"""
cds_extractor/media_server.py

Transporte UPnP contra un MediaServer: device description + SOAP Browse.

- MediaServer.from_location(): descarga y parsea la device description (friendlyName,
  UDN, serviceList). Exige servicio ContentDirectory.
- MediaServer.browse(): BrowseDirectChildren paginado en peticiones de
  CDS_BROWSE_REQUEST_MAX; devuelve entradas parseadas + cada página cruda (Description).
- MediaServer.browse_metadata(): BrowseMetadata de un único objeto.

Sin reintentos: cualquier fallo de red/HTTP/SOAP se propaga como BrowseError
y es el llamador quien decide (el extractor aborta la exportación).
"""

import threading
import time
from dataclasses import dataclass
from typing import Final
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen
from xml.sax.saxutils import escape

from lxml import etree

from cds_extractor import logger as _logger
from cds_extractor.cds_object import (
    BrowseResult,
    CatalogEntry,
    Description,
    parse_direct_children,
    parse_int_safely,
    parse_metadata,
)
from cds_extractor.config_cds import (
    CDS_BROWSE_REQUEST_MAX,
    CDS_HTTP_USER_AGENT,
    CDS_SOAP_TIMEOUT_SECONDS,
    CDS_XML_FETCH_TIMEOUT_SECONDS,
)
from cds_extractor.run_metrics import METRICS

MS_DEVICE_TYPE: Final[str] = "urn:schemas-upnp-org:device:MediaServer"
CDS_SERVICE_TYPE: Final[str] = "urn:schemas-upnp-org:service:ContentDirectory"
CDS_SERVICE_ID: Final[str] = "urn:upnp-org:serviceId:ContentDirectory"

BROWSE_DIRECT_CHILDREN: Final[str] = "BrowseDirectChildren"
BROWSE_METADATA: Final[str] = "BrowseMetadata"


# =============================================================================
# Errores
# =============================================================================


class CdsTransportError(Exception):
    """Fallo de comunicación con el MediaServer."""


class DeviceDescriptionError(CdsTransportError):
    """Device description no descargable o sin ContentDirectory."""


class BrowseError(CdsTransportError):
    """Fallo de una acción Browse (red, HTTP, SOAP Fault o respuesta incoherente)."""


# =============================================================================
# Modelos
# =============================================================================


@dataclass(frozen=True, slots=True)
class UpnpService:
    service_id: str
    service_type: str
    control_url: str
    scpd_url: str


@dataclass(frozen=True, slots=True)
class _BrowsePage:
    result: str
    number_returned: int
    total_matches: int


# =============================================================================
# Helpers XML / HTTP
# =============================================================================


def _localname(elem: etree._Element) -> str | None:
    if not isinstance(elem.tag, str):
        return None
    return etree.QName(elem).localname


def _xml_text(elem: etree._Element | None) -> str | None:
    if elem is None or elem.text is None:
        return None
    v = elem.text.strip()
    return v or None


def _child_text(parent: etree._Element, name: str) -> str | None:
    for child in parent:
        if _localname(child) == name:
            return _xml_text(child)
    return None


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _http_get_text(url: str, *, timeout_s: float) -> str:
    req = Request(url, method="GET", headers={"User-Agent": CDS_HTTP_USER_AGENT})
    with urlopen(req, timeout=float(timeout_s)) as resp:
        return _decode(resp.read())


def _parse_xml(data: bytes, *, encoding: str | None = None) -> etree._Element:
    parser = etree.XMLParser(encoding=encoding, resolve_entities=False, no_network=True)
    return etree.fromstring(data, parser=parser)


# =============================================================================
# Device description
# =============================================================================


def _parse_services(root: etree._Element, location: str) -> list[UpnpService]:
    out: list[UpnpService] = []
    for service in root.iter():
        if _localname(service) != "service":
            continue
        service_id = _child_text(service, "serviceId")
        service_type = _child_text(service, "serviceType")
        if not service_id or not service_type:
            continue
        out.append(
            UpnpService(
                service_id=service_id,
                service_type=service_type,
                control_url=urljoin(location, _child_text(service, "controlURL") or ""),
                scpd_url=urljoin(location, _child_text(service, "SCPDURL") or ""),
            )
        )
    return out


def _find_root_device(root: etree._Element) -> etree._Element | None:
    for elem in root.iter():
        if _localname(elem) == "device":
            return elem
    return None


# =============================================================================
# MediaServer
# =============================================================================


class MediaServer:
    """MediaServer UPnP accesible vía SOAP."""

    def __init__(
        self,
        *,
        location: str,
        description: str,
        udn: str,
        friendly_name: str,
        device_type: str,
        services: list[UpnpService],
    ) -> None:
        self.location = location
        self.description = description
        self.udn = udn
        self.friendly_name = friendly_name
        self.device_type = device_type
        self.services = list(services)

        cds = self.find_service(CDS_SERVICE_ID)
        if cds is None:
            cds = next((s for s in self.services if s.service_type.startswith(CDS_SERVICE_TYPE)), None)
        if cds is None:
            raise DeviceDescriptionError(f"{friendly_name!r} no tiene servicio ContentDirectory")
        self.content_directory = cds

        self._scpd_cache: dict[str, str] = {}
        self._scpd_lock = threading.Lock()

    @classmethod
    def from_description(cls, location: str, description: str) -> MediaServer:
        try:
            root = _parse_xml(description.encode("utf-8"), encoding="utf-8")
        except (etree.XMLSyntaxError, ValueError) as exc:
            raise DeviceDescriptionError(f"device description inválida en {location}: {exc!r}") from exc

        device = _find_root_device(root)
        if device is None:
            raise DeviceDescriptionError(f"device description sin <device> en {location}")

        device_type = _child_text(device, "deviceType") or ""
        if device_type and not device_type.startswith(MS_DEVICE_TYPE):
            _logger.warning(f"[CDS] {location} no se anuncia como MediaServer ({device_type})")

        friendly_name = _child_text(device, "friendlyName") or location
        return cls(
            location=location,
            description=description,
            udn=_child_text(device, "UDN") or "",
            friendly_name=friendly_name,
            device_type=device_type,
            services=_parse_services(root, location),
        )

    @classmethod
    def from_location(cls, location: str, *, timeout_s: float = CDS_XML_FETCH_TIMEOUT_SECONDS) -> MediaServer:
        try:
            description = _http_get_text(location, timeout_s=timeout_s)
        except (URLError, OSError) as exc:
            raise DeviceDescriptionError(f"no se pudo descargar {location}: {exc!r}") from exc
        return cls.from_description(location, description)

    def find_service(self, service_id: str) -> UpnpService | None:
        for service in self.services:
            if service.service_id == service_id:
                return service
        return None

    def get_service_description(self, service: UpnpService) -> str:
        """SCPD crudo del servicio (cacheado)."""
        with self._scpd_lock:
            cached = self._scpd_cache.get(service.service_id)
        if cached is not None:
            return cached
        try:
            text = _http_get_text(service.scpd_url, timeout_s=CDS_XML_FETCH_TIMEOUT_SECONDS)
        except (URLError, OSError) as exc:
            raise CdsTransportError(f"no se pudo descargar SCPD {service.scpd_url}: {exc!r}") from exc
        with self._scpd_lock:
            self._scpd_cache[service.service_id] = text
        return text

    # ---------------------------------------------------------------------
    # SOAP Browse
    # ---------------------------------------------------------------------

    def _soap_browse(self, object_id: str, browse_flag: str, starting_index: int, requested_count: int) -> _BrowsePage:
        service = self.content_directory
        body = (
            "<?xml version=\"1.0\" encoding=\"utf-8\"?>"
            "<s:Envelope xmlns:s=\"http://schemas.xmlsoap.org/soap/envelope/\" "
            "s:encodingStyle=\"http://schemas.xmlsoap.org/soap/encoding/\">"
            "<s:Body>"
            f"<u:Browse xmlns:u=\"{escape(service.service_type)}\">"
            f"<ObjectID>{escape(object_id)}</ObjectID>"
            f"<BrowseFlag>{browse_flag}</BrowseFlag>"
            "<Filter>*</Filter>"
            f"<StartingIndex>{starting_index}</StartingIndex>"
            f"<RequestedCount>{requested_count}</RequestedCount>"
            "<SortCriteria></SortCriteria>"
            "</u:Browse>"
            "</s:Body>"
            "</s:Envelope>"
        )
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPAction": f"\"{service.service_type}#Browse\"",
            "User-Agent": CDS_HTTP_USER_AGENT,
        }

        METRICS.incr("cds.browse.calls")
        t0 = time.monotonic()
        req = Request(service.control_url, data=body.encode("utf-8"), headers=headers, method="POST")
        try:
            with urlopen(req, timeout=float(CDS_SOAP_TIMEOUT_SECONDS)) as resp:
                raw = resp.read()
        except HTTPError as exc:
            self._browse_failed(f"HTTP {exc.code}")
            raise BrowseError(f"Browse({object_id}) HTTP {exc.code} desde {service.control_url}") from exc
        except (URLError, OSError) as exc:
            self._browse_failed(repr(exc))
            raise BrowseError(f"Browse({object_id}) falló contra {service.control_url}: {exc!r}") from exc
        finally:
            METRICS.observe_ms("cds.browse.latency_ms", (time.monotonic() - t0) * 1000.0)

        try:
            envelope = _parse_xml(raw)
        except (etree.XMLSyntaxError, ValueError) as exc:
            self._browse_failed(repr(exc))
            raise BrowseError(f"respuesta SOAP inválida para Browse({object_id}): {exc!r}") from exc

        result: str | None = None
        number: str | None = None
        total: str | None = None
        fault: str | None = None

        for elem in envelope.iter():
            name = _localname(elem)
            if name == "Result":
                if len(elem):
                    # Servers que no escapan el DIDL-Lite dentro de <Result>
                    result = "".join(etree.tostring(c, encoding="unicode", with_tail=False) for c in elem)
                else:
                    result = elem.text or ""
            elif name == "NumberReturned":
                number = _xml_text(elem)
            elif name == "TotalMatches":
                total = _xml_text(elem)
            elif name in ("faultstring", "errorDescription"):
                fault = _xml_text(elem) or fault

        if fault is not None and result is None:
            self._browse_failed(fault)
            raise BrowseError(f"SOAP Fault en Browse({object_id}): {fault}")

        return _BrowsePage(
            result=result or "",
            number_returned=parse_int_safely(number, -1),
            total_matches=parse_int_safely(total, -1),
        )

    def _browse_failed(self, detail: str) -> None:
        METRICS.incr("cds.browse.errors")
        METRICS.add_error("cds", "browse", endpoint=self.content_directory.control_url, detail=detail)

    def browse(self, object_id: str) -> BrowseResult:
        """
        Hijos directos de `object_id`, página a página.

        - Corta cuando NumberReturned == 0 o TotalMatches == 0.
        - Result vacío o contadores negativos (o ausentes) son un BrowseError.
        - Cada página se conserva cruda como Description(start, number, xml).
        """
        entries: list[CatalogEntry] = []
        descriptions: list[Description] = []
        start = 0
        while True:
            page = self._soap_browse(object_id, BROWSE_DIRECT_CHILDREN, start, CDS_BROWSE_REQUEST_MAX)
            number = page.number_returned
            total = page.total_matches
            if number == 0 or total == 0:
                break
            if not page.result or number < 0 or total < 0:
                self._browse_failed(f"NumberReturned={number} TotalMatches={total} Result={len(page.result)}B")
                raise BrowseError(f"Browse({object_id}) respuesta incoherente: number={number} total={total}")

            METRICS.incr("cds.browse.pages")
            parsed = parse_direct_children(self.udn, page.result)
            if not parsed:
                _logger.warning(f"[CDS] Browse({object_id}) [{start}+{number}] sin entradas válidas")
            entries.extend(parsed)
            descriptions.append(Description(start=start, count=number, xml=page.result))

            start += number
            if start >= total:
                break
        return BrowseResult(entries=entries, descriptions=descriptions)

    def browse_metadata(self, object_id: str) -> CatalogEntry | None:
        page = self._soap_browse(object_id, BROWSE_METADATA, 0, 0)
        return parse_metadata(self.udn, page.result)

    def __repr__(self) -> str:
        return f"MediaServer({self.friendly_name!r}, udn={self.udn!r})"


__all__ = [
    "BrowseError",
    "CdsTransportError",
    "DeviceDescriptionError",
    "MediaServer",
    "UpnpService",
]
