from __future__ import annotations

import re
from urllib.error import HTTPError, URLError

import pytest

import cds_extractor.media_server as ms
from cds_extractor.media_server import BrowseError, DeviceDescriptionError, MediaServer
from tests.conftest import URLOpenMock, build_soap_envelope, container_xml, didl, item_xml

LOCATION = "http://192.168.1.2:8200/desc.xml"


def _server(device_description_xml: str) -> MediaServer:
    return MediaServer.from_description(LOCATION, device_description_xml)


def _starting_index(req: object) -> int:
    body = getattr(req, "data", b"") or b""
    m = re.search(rb"<StartingIndex>(\d+)</StartingIndex>", body)
    assert m is not None
    return int(m.group(1))


class TestDeviceDescription:
    def test_parses_identity_and_services(self, device_description_xml: str) -> None:
        server = _server(device_description_xml)
        assert server.friendly_name == "Test: DLNA"
        assert server.udn == "uuid:1234"
        assert server.description == device_description_xml
        assert [s.service_id for s in server.services] == [
            "urn:upnp-org:serviceId:ConnectionManager",
            "urn:upnp-org:serviceId:ContentDirectory",
        ]
        cds = server.content_directory
        assert cds.control_url == "http://192.168.1.2:8200/ctl/ContentDir"
        assert cds.scpd_url == "http://192.168.1.2:8200/cds.xml"

    def test_without_content_directory_raises(self) -> None:
        xml = (
            "<root xmlns='urn:schemas-upnp-org:device-1-0'><device>"
            "<friendlyName>Router</friendlyName><serviceList/>"
            "</device></root>"
        )
        with pytest.raises(DeviceDescriptionError):
            MediaServer.from_description(LOCATION, xml)

    def test_malformed_description_raises(self) -> None:
        with pytest.raises(DeviceDescriptionError):
            MediaServer.from_description(LOCATION, "<root><device>")

    def test_from_location_downloads(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        mock = URLOpenMock(lambda _req: device_description_xml.encode("utf-8"))
        monkeypatch.setattr(ms, "urlopen", mock)
        server = MediaServer.from_location(LOCATION)
        assert server.friendly_name == "Test: DLNA"
        assert getattr(mock.calls[0], "full_url") == LOCATION

    def test_from_location_network_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def router(_req: object) -> bytes:
            raise URLError("down")

        monkeypatch.setattr(ms, "urlopen", URLOpenMock(router))
        with pytest.raises(DeviceDescriptionError):
            MediaServer.from_location(LOCATION)

    def test_service_description_is_cached(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        server = _server(device_description_xml)
        mock = URLOpenMock(lambda _req: b"<scpd/>")
        monkeypatch.setattr(ms, "urlopen", mock)

        cds = server.content_directory
        assert server.get_service_description(cds) == "<scpd/>"
        assert server.get_service_description(cds) == "<scpd/>"
        assert len(mock.calls) == 1


class TestBrowse:
    def test_single_page(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        result_xml = didl(container_xml("c1", "0"), item_xml("i1", "0"))
        mock = URLOpenMock(lambda _req: build_soap_envelope(result_xml, number_returned=2, total_matches=2))
        monkeypatch.setattr(ms, "urlopen", mock)

        out = _server(device_description_xml).browse("0")

        assert [e.object_id for e in out.entries] == ["c1", "i1"]
        assert [(d.start, d.count) for d in out.descriptions] == [(0, 2)]
        assert out.descriptions[0].xml == result_xml
        assert out.entries[0].server_id == "uuid:1234"

        req = mock.calls[0]
        headers = {k.lower(): v for k, v in getattr(req, "header_items")()}
        assert headers["soapaction"] == '"urn:schemas-upnp-org:service:ContentDirectory:1#Browse"'
        assert b"<BrowseFlag>BrowseDirectChildren</BrowseFlag>" in getattr(req, "data")

    def test_paginates_until_total(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        monkeypatch.setattr(ms, "CDS_BROWSE_REQUEST_MAX", 2)
        pages = {
            0: didl(item_xml("a", "0"), item_xml("b", "0")),
            2: didl(item_xml("c", "0")),
        }

        def router(req: object) -> bytes:
            start = _starting_index(req)
            number = 2 if start == 0 else 1
            return build_soap_envelope(pages[start], number_returned=number, total_matches=3)

        mock = URLOpenMock(router)
        monkeypatch.setattr(ms, "urlopen", mock)

        out = _server(device_description_xml).browse("0")

        assert [e.object_id for e in out.entries] == ["a", "b", "c"]
        assert [(d.start, d.count, d.end) for d in out.descriptions] == [(0, 2, 1), (2, 1, 2)]
        assert len(mock.calls) == 2

    def test_empty_container(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        mock = URLOpenMock(lambda _req: build_soap_envelope(didl(), number_returned=0, total_matches=0))
        monkeypatch.setattr(ms, "urlopen", mock)

        out = _server(device_description_xml).browse("1")
        assert out.entries == []
        assert out.descriptions == []

    def test_page_without_valid_entries_is_kept(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        result_xml = didl('<item parentID="0"/>')
        monkeypatch.setattr(
            ms, "urlopen", URLOpenMock(lambda _req: build_soap_envelope(result_xml, number_returned=1, total_matches=1))
        )

        out = _server(device_description_xml).browse("0")
        assert out.entries == []
        assert len(out.descriptions) == 1

    def test_missing_counters_raise(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        monkeypatch.setattr(
            ms,
            "urlopen",
            URLOpenMock(lambda _req: build_soap_envelope(didl(item_xml("a", "0")), number_returned=None, total_matches=1)),
        )
        with pytest.raises(BrowseError):
            _server(device_description_xml).browse("0")

    def test_empty_result_with_counters_raises(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        monkeypatch.setattr(
            ms,
            "urlopen",
            URLOpenMock(lambda _req: build_soap_envelope("", number_returned=1, total_matches=1)),
        )
        with pytest.raises(BrowseError):
            _server(device_description_xml).browse("0")

    def test_http_error_raises(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        def router(req: object) -> bytes:
            raise HTTPError(getattr(req, "full_url"), 500, "Internal Server Error", None, None)  # type: ignore[arg-type]

        monkeypatch.setattr(ms, "urlopen", URLOpenMock(router))
        with pytest.raises(BrowseError):
            _server(device_description_xml).browse("0")

    def test_invalid_envelope_raises(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        monkeypatch.setattr(ms, "urlopen", URLOpenMock(lambda _req: b"<html>oops"))
        with pytest.raises(BrowseError):
            _server(device_description_xml).browse("0")

    def test_unescaped_result_is_serialized(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        raw = (
            "<s:Envelope xmlns:s='http://schemas.xmlsoap.org/soap/envelope/'><s:Body>"
            "<u:BrowseResponse xmlns:u='urn:schemas-upnp-org:service:ContentDirectory:1'>"
            f"<Result>{didl(item_xml('a', '0'))}</Result>"
            "<NumberReturned>1</NumberReturned><TotalMatches>1</TotalMatches>"
            "</u:BrowseResponse></s:Body></s:Envelope>"
        ).encode("utf-8")
        monkeypatch.setattr(ms, "urlopen", URLOpenMock(lambda _req: raw))

        out = _server(device_description_xml).browse("0")
        assert [e.object_id for e in out.entries] == ["a"]
        assert out.entries[0].title == "a"

    def test_object_id_is_escaped(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        mock = URLOpenMock(lambda _req: build_soap_envelope(didl(), number_returned=0, total_matches=0))
        monkeypatch.setattr(ms, "urlopen", mock)

        _server(device_description_xml).browse("a&b<c>")
        assert b"<ObjectID>a&amp;b&lt;c&gt;</ObjectID>" in getattr(mock.calls[0], "data")

    def test_browse_metadata(self, monkeypatch: pytest.MonkeyPatch, device_description_xml: str) -> None:
        mock = URLOpenMock(
            lambda _req: build_soap_envelope(didl(container_xml("7", "0")), number_returned=1, total_matches=1)
        )
        monkeypatch.setattr(ms, "urlopen", mock)

        entry = _server(device_description_xml).browse_metadata("7")
        assert entry is not None and entry.is_container
        assert b"<BrowseFlag>BrowseMetadata</BrowseFlag>" in getattr(mock.calls[0], "data")
