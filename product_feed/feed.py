"""
Feed controller.
Runs every item through processors, filters and mappers, validates the
resulting product and streams it to the destination before pulling the next.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from product_feed.config import CleanupPolicy, ErrorPolicy, FeedConfig
from product_feed.driver import ItemDriver
from product_feed.exceptions import (
    FeedError,
    PipelineStageError,
    ValidationError,
)
from product_feed.logging_config import (
    LogContext,
    generate_run_id,
    log_execution_time,
    set_item_ordinal,
)
from product_feed.models import Product
from product_feed.pipeline import PipelineStage, StageRegistry
from product_feed.serializer import StreamingSerializer
from product_feed.sinks import Sink, open_sink

logger = logging.getLogger(__name__)


class FeedState(Enum):
    """Lifecycle of a feed run."""
    IDLE = "idle"
    CONFIGURING = "configuring"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WriteResult:
    """Result of a single feed run."""
    run_id: str
    destination: str
    pulled_count: int = 0
    written_count: int = 0
    filtered_count: int = 0
    failed: list[dict] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "destination": self.destination,
            "pulled_count": self.pulled_count,
            "written_count": self.written_count,
            "filtered_count": self.filtered_count,
            "failure_count": self.failure_count,
            "failed_item_ordinals": [f.get("item_ordinal") for f in self.failed],
        }


class ProductValidator:
    """Checks that a product carries every required field before it is written."""

    def __init__(self):
        self.validation_errors: list[ValidationError] = []

    def validate(self, product: Product, item_ordinal: Optional[int] = None) -> bool:
        """
        Validate product completeness.

        Args:
            product: Populated product
            item_ordinal: Position of the source item, for error context

        Returns:
            True if valid, False otherwise
        """
        self.validation_errors.clear()

        for field_name in product.missing_fields():
            self.validation_errors.append(
                ValidationError(
                    message=f"Missing required field '{field_name}' for item {item_ordinal}",
                    field_name=field_name,
                    item_ordinal=item_ordinal,
                )
            )

        return len(self.validation_errors) == 0


class Feed:
    """
    Streams items from any iterable source into an XML product feed.

    Example:
        feed = Feed(FeedConfig.build(destination="file:///tmp/feed.xml"))
        feed.add_filter(lambda item: item["active"])
        feed.add_mapper(lambda item, product: product.set_reference(item["sku"]) ...)
        result = feed.write(rows)

    Only one product is alive at any time, so memory use does not grow
    with the number of items.
    """

    def __init__(self, config: Optional[FeedConfig] = None, registry: Optional[StageRegistry] = None):
        self.config = config or FeedConfig()
        self.registry = registry or StageRegistry()
        self.validator = ProductValidator()
        self._state = FeedState.IDLE

    @property
    def state(self) -> FeedState:
        return self._state

    def add_processor(self, fn: Callable[[Any], Any]) -> PipelineStage:
        return self.registry.add_processor(fn)

    def add_filter(self, fn: Callable[[Any], bool]) -> PipelineStage:
        return self.registry.add_filter(fn)

    def add_mapper(self, fn: Callable[[Any, Product], Any]) -> PipelineStage:
        return self.registry.add_mapper(fn)

    @log_execution_time(logger)
    def write(self, source: Iterable[Any]) -> WriteResult:
        """
        Write every item of the source to the configured destination.

        Args:
            source: Finite iterable of items, consumed lazily

        Returns:
            WriteResult with run counters

        Raises:
            ConfigurationError: Before any item is pulled, for a non-iterable source
            SinkError: If the destination cannot be opened, written or closed
            ValidationError: For an incomplete product under the abort policy
            PipelineStageError: For a failing stage under the abort policy
        """
        if self._state in (FeedState.CONFIGURING, FeedState.RUNNING):
            raise RuntimeError("Feed.write is already in progress")

        run_id = generate_run_id()
        with LogContext(run_id=run_id, item_ordinal=None):
            self._state = FeedState.CONFIGURING
            try:
                driver = ItemDriver(source)
                sink = open_sink(
                    self.config.destination,
                    encoding=self.config.encoding,
                    aws_region=self.config.aws_region,
                    s3_endpoint_url=self.config.s3_endpoint_url,
                )
            except Exception:
                self._state = FeedState.FAILED
                raise

            result = WriteResult(run_id=run_id, destination=self.config.destination)
            logger.info(
                f"Starting feed run to {self.config.destination}",
                extra={"destination": self.config.destination},
            )
            self._state = FeedState.RUNNING
            try:
                self._run(driver, sink, result)
            except Exception as e:
                self._state = FeedState.FAILED
                logger.error(
                    f"Feed run aborted after {result.pulled_count} items: {e}",
                    extra={"metrics": result.to_dict()},
                )
                self._abort(sink)
                raise
            finally:
                if not sink.closed:
                    self._state = FeedState.FAILED
                    self._abort(sink)

            self._state = FeedState.COMPLETED
            logger.info(
                "Feed run complete",
                extra={"metrics": result.to_dict()},
            )
            return result

    def _run(self, driver: ItemDriver, sink: Sink, result: WriteResult) -> None:
        serializer = StreamingSerializer(sink, encoding=self.config.encoding)
        serializer.open_document(self.config)

        for ordinal, item in driver:
            result.pulled_count = ordinal
            set_item_ordinal(ordinal)
            try:
                product = self._build_product(item, ordinal)
            except (ValidationError, PipelineStageError) as e:
                e.context.run_id = result.run_id
                if self.config.error_policy is ErrorPolicy.ABORT:
                    raise
                logger.warning(f"Skipping item {ordinal}: {e.message}")
                result.failed.append({"item_ordinal": ordinal, "error": e.to_dict()})
                continue

            if product is None:
                result.filtered_count += 1
                continue

            serializer.write_product(product)
            result.written_count += 1

        set_item_ordinal(None)
        serializer.close_document()
        sink.close()

    def _build_product(self, item: Any, ordinal: int) -> Optional[Product]:
        """Run one item through the pipeline; None means a filter dropped it."""
        item = self.registry.run_processors(item, ordinal)
        if not self.registry.run_filters(item, ordinal):
            return None

        product = Product()
        self.registry.run_mappers(item, product, ordinal)

        if not self.validator.validate(product, ordinal):
            raise self.validator.validation_errors[0]
        return product

    def _abort(self, sink: Sink) -> None:
        """Close the sink on a failed run, applying the cleanup policy."""
        try:
            if self.config.cleanup_policy is CleanupPolicy.DELETE:
                sink.discard()
            else:
                sink.close()
        except (FeedError, OSError) as e:
            logger.error(f"Failed to close {sink.descriptor} after abort: {e}")
