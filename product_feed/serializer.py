"""
Streaming XML serializer.

The document frame is written by hand so it can be opened before the first
product and closed after the last. Each product is rendered as its own
element tree, written as a single line and flushed, then dropped.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any, Optional

from product_feed.config import FeedConfig
from product_feed.models import Product, Variation
from product_feed.sinks import Sink

logger = logging.getLogger(__name__)

ROOT_TAG = "feed"

# characters outside the XML 1.0 Char production
_INVALID_XML_CHARS = re.compile(
    "[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]"
)


def format_value(value: Any) -> str:
    """Render a scalar as element text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        text = repr(value)
    else:
        text = str(value)
    return _INVALID_XML_CHARS.sub("", text)


def _text_element(parent: ET.Element, tag: str, value: Any) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = format_value(value)
    return element


def attributes_element(attributes: dict) -> ET.Element:
    container = ET.Element("attributes")
    for key, value in attributes.items():
        entry = _text_element(container, "attribute", value)
        entry.set("name", format_value(key))
    return container


def variation_element(variation: Variation) -> ET.Element:
    element = ET.Element("variation")
    _text_element(element, "reference", variation.reference)
    if variation.name is not None:
        _text_element(element, "name", variation.name)
    _text_element(element, "price", variation.price)
    _text_element(element, "quantity", variation.quantity)
    return element


def product_element(product: Product) -> ET.Element:
    """Build the element for one validated product."""
    element = ET.Element("product")
    _text_element(element, "reference", product.reference)
    _text_element(element, "name", product.name)
    _text_element(element, "price", product.price)
    _text_element(element, "quantity", product.quantity)
    if product.attributes:
        element.append(attributes_element(product.attributes))
    if product.variations:
        container = ET.SubElement(element, "variations")
        for variation in product.variations:
            container.append(variation_element(variation))
    return element


class StreamingSerializer:
    """Writes a feed document to a sink one product at a time."""

    def __init__(self, sink: Sink, encoding: str = "utf-8"):
        self.sink = sink
        self.encoding = encoding
        self.product_count = 0
        self._opened = False
        self._finished = False

    def open_document(self, config: Optional[FeedConfig] = None) -> None:
        """Write the XML declaration, the root start tag and feed metadata."""
        if self._opened:
            raise RuntimeError("Feed document already opened")
        self._opened = True

        self.sink.write(f'<?xml version="1.0" encoding="{self.encoding}"?>\n')
        self.sink.write(f"<{ROOT_TAG}>\n")

        if config is not None:
            if config.platform_name is not None:
                platform = ET.Element("platform")
                _text_element(platform, "name", config.platform_name)
                if config.platform_version is not None:
                    _text_element(platform, "version", config.platform_version)
                self._write_element(platform)

            if config.attributes:
                self._write_element(attributes_element(config.attributes))

        self.sink.flush()

    def write_product(self, product: Product) -> None:
        """Write one product and flush it before returning."""
        if not self._opened or self._finished:
            raise RuntimeError("Products can only be written inside an open document")
        self._write_element(product_element(product))
        self.sink.flush()
        self.product_count += 1

    def close_document(self) -> None:
        """Write the root end tag and flush."""
        if not self._opened:
            raise RuntimeError("Feed document was never opened")
        if self._finished:
            return
        self._finished = True
        self.sink.write(f"</{ROOT_TAG}>\n")
        self.sink.flush()
        logger.debug(f"Closed feed document after {self.product_count} products")

    def _write_element(self, element: ET.Element) -> None:
        # parsers normalise a raw carriage return to a newline
        text = ET.tostring(element, encoding="unicode").replace("\r", "&#13;")
        self.sink.write(text + "\n")
