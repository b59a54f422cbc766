"""Tests for the streaming XML serializer."""

import xml.etree.ElementTree as ET
from unittest.mock import Mock

import pytest

from product_feed.config import FeedConfig
from product_feed.models import Product
from product_feed.serializer import StreamingSerializer, format_value, product_element
from product_feed.sinks import open_sink


def complete_product(reference=1):
    return Product().set_reference(reference).set_name(f"Product {reference}").set_price(5.99).set_quantity(3)


class TestFormatValue:
    """Tests for scalar rendering."""

    def test_booleans(self):
        assert format_value(True) == "true"
        assert format_value(False) == "false"

    def test_numbers(self):
        assert format_value(5.99) == "5.99"
        assert format_value(3) == "3"

    def test_invalid_xml_characters_dropped(self):
        assert format_value("a\x00b\x1fc") == "abc"
        assert format_value("tab\tkept") == "tab\tkept"


class TestProductElement:
    """Tests for per-product element building."""

    def test_required_fields_first(self):
        """Test required fields lead the product element."""
        product = complete_product().set_attribute("color", "red")
        product.create_variation().set_reference("V1").set_price(1).set_quantity(2)

        element = product_element(product)

        assert [child.tag for child in element] == [
            "reference", "name", "price", "quantity", "attributes", "variations",
        ]
        assert element.findtext("reference") == "1"
        assert element.findtext("price") == "5.99"

    def test_empty_containers_omitted(self):
        """Test attributes and variations are omitted when empty."""
        element = product_element(complete_product())
        assert element.find("attributes") is None
        assert element.find("variations") is None

    def test_variation_name_optional(self):
        """Test variation names are written only when set."""
        product = complete_product()
        product.create_variation().set_reference("A").set_price(1).set_quantity(1)
        product.create_variation().set_reference("B").set_name("Large").set_price(2).set_quantity(1)

        variations = product_element(product).findall("variations/variation")
        assert variations[0].find("name") is None
        assert variations[1].findtext("name") == "Large"

    def test_markup_in_values_escaped(self):
        """Test markup characters survive a round trip."""
        product = complete_product().set_name("Fish & Chips <large>")
        text = ET.tostring(product_element(product), encoding="unicode")
        assert ET.fromstring(text).findtext("name") == "Fish & Chips <large>"


class TestStreamingSerializer:
    """Tests for document framing and flushing."""

    def test_empty_document_is_well_formed(self, feed_path, parse_feed):
        """Test a feed with no products is still valid XML."""
        sink = open_sink(str(feed_path))
        serializer = StreamingSerializer(sink)
        serializer.open_document()
        serializer.close_document()
        sink.close()

        root = parse_feed(feed_path)
        assert root.tag == "feed"
        assert len(root) == 0

    def test_metadata_header(self, feed_path, parse_feed):
        """Test platform metadata and feed attributes precede products."""
        config = FeedConfig.build(
            platform_name="Shop",
            platform_version="2.0",
            attributes={"currency": "EUR", "live": True},
        )
        sink = open_sink(str(feed_path))
        serializer = StreamingSerializer(sink)
        serializer.open_document(config)
        serializer.write_product(complete_product())
        serializer.close_document()
        sink.close()

        root = parse_feed(feed_path)
        assert [child.tag for child in root] == ["platform", "attributes", "product"]
        assert root.findtext("platform/name") == "Shop"
        assert root.findtext("platform/version") == "2.0"
        attributes = {a.get("name"): a.text for a in root.findall("attributes/attribute")}
        assert attributes == {"currency": "EUR", "live": "true"}

    def test_carriage_return_round_trip(self, feed_path, parse_feed):
        """Test carriage returns in values survive re-parsing."""
        sink = open_sink(str(feed_path))
        serializer = StreamingSerializer(sink)
        serializer.open_document()
        serializer.write_product(
            complete_product().set_name("line 1\r\nline 2").set_attribute("note", "a\rb")
        )
        serializer.close_document()
        sink.close()

        product = parse_feed(feed_path).find("product")
        assert product.findtext("name") == "line 1\r\nline 2"
        assert product.findtext("attributes/attribute") == "a\rb"

    def test_flush_after_each_product(self):
        """Test every product write is followed by a flush."""
        sink = Mock()
        serializer = StreamingSerializer(sink)
        serializer.open_document()
        sink.reset_mock()

        serializer.write_product(complete_product(1))
        serializer.write_product(complete_product(2))

        calls = [call[0] for call in sink.method_calls]
        assert calls == ["write", "flush", "write", "flush"]
        assert serializer.product_count == 2

    def test_write_before_open(self):
        """Test products cannot be written outside the document."""
        serializer = StreamingSerializer(Mock())
        with pytest.raises(RuntimeError):
            serializer.write_product(complete_product())

    def test_write_after_close(self):
        """Test products cannot be written after the root is closed."""
        serializer = StreamingSerializer(Mock())
        serializer.open_document()
        serializer.close_document()
        with pytest.raises(RuntimeError):
            serializer.write_product(complete_product())

    def test_declaration_uses_encoding(self):
        """Test the XML declaration names the configured encoding."""
        sink = Mock()
        StreamingSerializer(sink, encoding="iso-8859-1").open_document()
        assert sink.write.call_args_list[0].args[0].startswith(
            '<?xml version="1.0" encoding="iso-8859-1"?>'
        )
