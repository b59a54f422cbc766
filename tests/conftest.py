"""Pytest fixtures and configuration."""

import os
import xml.etree.ElementTree as ET

import pytest

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from product_feed.config import FeedConfig
from product_feed.sinks import AWSClientFactory


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Drop cached boto3 clients between tests."""
    AWSClientFactory.reset()
    yield
    AWSClientFactory.reset()


@pytest.fixture
def feed_path(tmp_path):
    """Return a path for a local feed file."""
    return tmp_path / "feed.xml"


@pytest.fixture
def file_config(feed_path):
    """Return a config writing to a local file."""
    return FeedConfig.build(destination=str(feed_path))


@pytest.fixture
def sample_items():
    """Return dict items as a source would yield them."""
    return [
        {
            "sku": 1,
            "title": "Product 1",
            "price": 5.99,
            "stock": 3,
            "color": "red",
            "sizes": [("1-S", 5.99, 1), ("1-M", 6.49, 2)],
        },
        {
            "sku": 2,
            "title": "Product 2",
            "price": 12.5,
            "stock": 0,
            "color": "blue",
            "sizes": [],
        },
    ]


@pytest.fixture
def sku_mapper():
    """Return a mapper for the sample_items shape."""

    def mapper(item, product):
        product.set_reference(item["sku"]).set_name(item["title"])
        product.set_price(item["price"]).set_quantity(item["stock"])
        product.set_attribute("color", item["color"])
        for reference, price, quantity in item["sizes"]:
            product.create_variation().set_reference(reference).set_price(price).set_quantity(quantity)

    return mapper


@pytest.fixture
def parse_feed():
    """Return a helper that parses a written feed file."""

    def parse(path):
        return ET.parse(str(path)).getroot()

    return parse
