from __future__ import annotations

import pytest
from lxml import etree

from cds_extractor.cds_object import (
    CatalogEntry,
    InvalidEntryError,
    parse_direct_children,
    parse_int_safely,
    parse_metadata,
)
from tests.conftest import container_xml, didl, item_xml


class TestParseDirectChildren:
    def test_container_and_item(self, didl_container_and_item_xml: str) -> None:
        out = parse_direct_children("uuid:1", didl_container_and_item_xml)
        assert [e.object_id for e in out] == ["c1", "i1"]
        assert out[0].is_container is True
        assert out[1].is_container is False
        assert out[1].is_item is True
        assert out[1].title == "My Movie"
        assert out[1].upnp_class == "object.item.videoItem"
        assert out[1].get_value("res@protocolInfo") == "http-get:*:video/mp4:*"
        assert out[1].get_int_value("res@size", -1) == 123
        assert out[0].server_id == "uuid:1"
        assert out[0].parent_id == "0"

    @pytest.mark.parametrize("xml", ["", None, "<DIDL-Lite><item", "not xml at all"])
    def test_empty_or_malformed_input_yields_empty(self, xml: str | None) -> None:
        assert parse_direct_children("uuid:1", xml) == []

    def test_malformed_element_is_skipped(self) -> None:
        xml = didl(
            container_xml("a", "0"),
            '<item parentID="0"><dc:title>no id</dc:title></item>',
            '<item id="x"><dc:title>no parent</dc:title></item>',
            "<unknown id='u' parentID='0'/>",
            item_xml("b", "0"),
        )
        out = parse_direct_children("uuid:1", xml)
        assert [e.object_id for e in out] == ["a", "b"]
        assert len(out) <= 5

    def test_comments_are_ignored(self) -> None:
        xml = didl("<!-- hi -->", item_xml("b", "0"))
        assert [e.object_id for e in parse_direct_children("uuid:1", xml)] == ["b"]

    def test_encoding_declaration_is_accepted(self) -> None:
        xml = "<?xml version='1.0' encoding='utf-8'?>" + didl(item_xml("ñ", "0", "Vídeo"))
        out = parse_direct_children("uuid:1", xml)
        assert out[0].object_id == "ñ"
        assert out[0].title == "Vídeo"


class TestParseMetadata:
    def test_first_valid_entry(self) -> None:
        xml = didl('<item parentID="0"/>', item_xml("m", "0"), item_xml("n", "0"))
        entry = parse_metadata("uuid:1", xml)
        assert entry is not None
        assert entry.object_id == "m"

    def test_none_when_nothing_parses(self) -> None:
        assert parse_metadata("uuid:1", "") is None
        assert parse_metadata("uuid:1", "<broken") is None
        assert parse_metadata("uuid:1", didl('<item parentID="0"/>')) is None


class TestCatalogEntry:
    def test_invalid_root_tag_raises(self) -> None:
        with pytest.raises(InvalidEntryError):
            CatalogEntry("uuid:1", etree.fromstring('<desc id="1" parentID="0"/>'))

    def test_root_tag_and_repeated_children(self) -> None:
        elem = etree.fromstring(
            '<item id="1" parentID="0" restricted="1">'
            "<res>a</res><res size='9'>b</res>"
            "</item>"
        )
        entry = CatalogEntry("uuid:1", elem)
        assert entry.root_tag.name == "item"
        assert entry.get_value("@restricted") == "1"
        assert entry.get_value("res@size", 0) is None
        assert entry.get_value("res@size", 1) == "9"
        tags = entry.get_tag_list("res")
        assert tags is not None and [t.value for t in tags] == ["a", "b"]
        assert entry.get_tag("res", 2) is None

    def test_equality(self) -> None:
        xml = didl(item_xml("1", "0"))
        assert parse_direct_children("s", xml) == parse_direct_children("s", xml)
        assert parse_direct_children("s", xml) != parse_direct_children("t", xml)


def test_parse_int_safely() -> None:
    assert parse_int_safely(" 12 ", 0) == 12
    assert parse_int_safely("x", -1) == -1
    assert parse_int_safely(None, 5) == 5
