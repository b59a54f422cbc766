"""
Product Feed - memory-bounded streaming XML export.

This package turns any lazy sequence of records into an XML product feed,
running each record through processor, filter and mapper stages and
writing it to the destination before the next record is pulled.
"""

from product_feed.config import CleanupPolicy, ErrorPolicy, FeedConfig
from product_feed.driver import ItemDriver, iter_json_lines, open_json_lines
from product_feed.exceptions import (
    ConfigurationError,
    FeedError,
    PipelineStageError,
    S3SinkError,
    SinkError,
    SourceError,
    ValidationError,
)
from product_feed.feed import Feed, FeedState, ProductValidator, WriteResult
from product_feed.mappers import map_record
from product_feed.models import Product, Variation
from product_feed.pipeline import PipelineStage, StageCategory, StageRegistry
from product_feed.serializer import StreamingSerializer
from product_feed.sinks import open_sink, parse_destination

__all__ = [
    "Feed",
    "FeedConfig",
    "FeedState",
    "WriteResult",
    "ProductValidator",
    "ErrorPolicy",
    "CleanupPolicy",
    "Product",
    "Variation",
    "PipelineStage",
    "StageCategory",
    "StageRegistry",
    "ItemDriver",
    "iter_json_lines",
    "open_json_lines",
    "StreamingSerializer",
    "open_sink",
    "parse_destination",
    "map_record",
    "FeedError",
    "ConfigurationError",
    "ValidationError",
    "PipelineStageError",
    "SinkError",
    "S3SinkError",
    "SourceError",
]

__version__ = "1.0.0"
