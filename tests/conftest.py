from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
from xml.sax.saxutils import escape

import pytest

from cds_extractor.cds_object import BrowseResult, Description, parse_direct_children
from cds_extractor.media_server import UpnpService

DIDL_OPEN = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns:av="urn:schemas-sony-com:av" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
)
DIDL_CLOSE = "</DIDL-Lite>"


@dataclass(slots=True)
class FakeHTTPResponse:
    payload: bytes

    def read(self) -> bytes:
        return self.payload

    def __enter__(self) -> "FakeHTTPResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        return None


class URLOpenMock:
    """
    Minimal urlopen mock with programmable routing.

    Records requested URLs and returns FakeHTTPResponse(payload) per route.
    The router may raise to simulate network errors.
    """

    def __init__(self, router: Callable[[object], bytes]) -> None:
        self._router = router
        self.calls: list[object] = []

    def __call__(self, url: object, timeout: float | None = None) -> FakeHTTPResponse:
        self.calls.append(url)
        payload = self._router(url)
        return FakeHTTPResponse(payload=payload)


def build_soap_envelope(result_xml: str, *, number_returned: int | None, total_matches: int | None) -> bytes:
    number = f"<NumberReturned>{number_returned}</NumberReturned>" if number_returned is not None else ""
    total = f"<TotalMatches>{total_matches}</TotalMatches>" if total_matches is not None else ""
    return (
        "<?xml version='1.0' encoding='utf-8'?>"
        "<s:Envelope xmlns:s='http://schemas.xmlsoap.org/soap/envelope/'>"
        "<s:Body>"
        "<u:BrowseResponse xmlns:u='urn:schemas-upnp-org:service:ContentDirectory:1'>"
        f"<Result>{escape(result_xml)}</Result>"
        f"{number}"
        f"{total}"
        "<UpdateID>1</UpdateID>"
        "</u:BrowseResponse>"
        "</s:Body>"
        "</s:Envelope>"
    ).encode("utf-8")


def didl(*children: str) -> str:
    return DIDL_OPEN + "".join(children) + DIDL_CLOSE


def container_xml(object_id: str, parent_id: str, title: str | None = None) -> str:
    return (
        f'<container id="{object_id}" parentID="{parent_id}" restricted="1">'
        f"<dc:title>{title or object_id}</dc:title>"
        "<upnp:class>object.container.storageFolder</upnp:class>"
        "</container>"
    )


def item_xml(object_id: str, parent_id: str, title: str | None = None, extra: str = "") -> str:
    return (
        f'<item id="{object_id}" parentID="{parent_id}" restricted="1">'
        f"<dc:title>{title or object_id}</dc:title>"
        "<upnp:class>object.item.videoItem</upnp:class>"
        f"{extra}"
        "</item>"
    )


def browse_result(parent_id: str, *child_ids: str, server_id: str = "uuid:test") -> BrowseResult:
    """Un Browse de una sola página con los contenedores `child_ids`."""
    if not child_ids:
        return BrowseResult()
    xml = didl(*(container_xml(cid, parent_id) for cid in child_ids))
    return BrowseResult(
        entries=parse_direct_children(server_id, xml),
        descriptions=[Description(start=0, count=len(child_ids), xml=xml)],
    )


@dataclass
class FakeServer:
    """Transporte en memoria: id -> BrowseResult (o excepción a lanzar)."""

    tree: dict[str, BrowseResult | Exception] = field(default_factory=dict)
    friendly_name: str = "Test Server"
    udn: str = "uuid:test"
    description: str = "<root/>"
    services: list[UpnpService] = field(
        default_factory=lambda: [
            UpnpService(
                service_id="urn:upnp-org:serviceId:ContentDirectory",
                service_type="urn:schemas-upnp-org:service:ContentDirectory:1",
                control_url="http://device/ctl",
                scpd_url="http://device/cds.xml",
            )
        ]
    )
    calls: list[str] = field(default_factory=list)
    on_browse: Callable[[str], None] | None = None

    def browse(self, object_id: str) -> BrowseResult:
        self.calls.append(object_id)
        out = self.tree.get(object_id, BrowseResult())
        if self.on_browse is not None:
            self.on_browse(object_id)
        if isinstance(out, Exception):
            raise out
        return out

    def get_service_description(self, service: UpnpService) -> str:
        return f"<scpd id='{service.service_id}'/>"


@pytest.fixture()
def didl_container_and_item_xml() -> str:
    return didl(
        container_xml("c1", "0", "Movies"),
        item_xml(
            "i1",
            "0",
            "My Movie",
            '<res protocolInfo="http-get:*:video/mp4:*" size="123">http://example/video.mp4</res>',
        ),
    )


@pytest.fixture()
def device_description_xml() -> str:
    return (
        "<?xml version='1.0' encoding='utf-8'?>"
        "<root xmlns='urn:schemas-upnp-org:device-1-0'>"
        "<device>"
        "<deviceType>urn:schemas-upnp-org:device:MediaServer:1</deviceType>"
        "<friendlyName>Test: DLNA</friendlyName>"
        "<UDN>uuid:1234</UDN>"
        "<serviceList>"
        "<service>"
        "<serviceType>urn:schemas-upnp-org:service:ConnectionManager:1</serviceType>"
        "<serviceId>urn:upnp-org:serviceId:ConnectionManager</serviceId>"
        "<SCPDURL>/cm.xml</SCPDURL>"
        "<controlURL>/ctl/ConnectionMgr</controlURL>"
        "</service>"
        "<service>"
        "<serviceType>urn:schemas-upnp-org:service:ContentDirectory:1</serviceType>"
        "<serviceId>urn:upnp-org:serviceId:ContentDirectory</serviceId>"
        "<SCPDURL>/cds.xml</SCPDURL>"
        "<controlURL>/ctl/ContentDir</controlURL>"
        "</service>"
        "</serviceList>"
        "</device>"
        "</root>"
    )
