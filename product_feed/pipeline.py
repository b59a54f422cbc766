"""
Pipeline stage registry.

Stages are kept in one append-only sequence per category and always run
in registration order:

    processors  (item) -> item'          each result feeds the next processor
    filters     (item) -> bool           the first falsy result drops the item
    mappers     (item, product) -> None  populate the product in place
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from product_feed.exceptions import ConfigurationError, PipelineStageError
from product_feed.models import Product

logger = logging.getLogger(__name__)


class StageCategory(Enum):
    """Pipeline stage categories, in execution order."""
    PROCESSOR = "processor"
    FILTER = "filter"
    MAPPER = "mapper"


@dataclass(frozen=True)
class PipelineStage:
    """A registered callable tagged with its category and position."""
    category: StageCategory
    index: int
    fn: Callable[..., Any]

    @property
    def name(self) -> str:
        return getattr(self.fn, "__qualname__", None) or repr(self.fn)


class StageRegistry:
    """Ordered storage and dispatch of processor, filter and mapper stages."""

    def __init__(self):
        self._stages: dict[StageCategory, list[PipelineStage]] = {
            category: [] for category in StageCategory
        }

    def add_processor(self, fn: Callable[[Any], Any]) -> PipelineStage:
        return self._add(StageCategory.PROCESSOR, fn)

    def add_filter(self, fn: Callable[[Any], bool]) -> PipelineStage:
        return self._add(StageCategory.FILTER, fn)

    def add_mapper(self, fn: Callable[[Any, Product], Any]) -> PipelineStage:
        return self._add(StageCategory.MAPPER, fn)

    def stages(self, category: StageCategory) -> tuple[PipelineStage, ...]:
        return tuple(self._stages[category])

    def __len__(self) -> int:
        return sum(len(stages) for stages in self._stages.values())

    def _add(self, category: StageCategory, fn: Callable[..., Any]) -> PipelineStage:
        if not callable(fn):
            raise ConfigurationError(
                message=f"{category.value.capitalize()} must be callable, got {type(fn).__name__}",
                config_key=category.value,
            )
        stages = self._stages[category]
        stage = PipelineStage(category=category, index=len(stages), fn=fn)
        stages.append(stage)
        logger.debug(f"Registered {category.value} #{stage.index}: {stage.name}")
        return stage

    def run_processors(self, item: Any, ordinal: int) -> Any:
        """Thread the item through every processor; each result replaces the item."""
        for stage in self._stages[StageCategory.PROCESSOR]:
            result = self._call(stage, ordinal, item)
            if result is None:
                raise PipelineStageError(
                    message=(
                        f"Processor #{stage.index} ({stage.name}) returned no value "
                        f"for item {ordinal}"
                    ),
                    stage_category=stage.category.value,
                    stage_index=stage.index,
                    item_ordinal=ordinal,
                )
            item = result
        return item

    def run_filters(self, item: Any, ordinal: int) -> bool:
        """Return False as soon as one filter rejects the item."""
        for stage in self._stages[StageCategory.FILTER]:
            verdict = self._call(stage, ordinal, item)
            if verdict is None:
                raise PipelineStageError(
                    message=(
                        f"Filter #{stage.index} ({stage.name}) returned no verdict "
                        f"for item {ordinal}"
                    ),
                    stage_category=stage.category.value,
                    stage_index=stage.index,
                    item_ordinal=ordinal,
                )
            if not verdict:
                logger.debug(f"Item {ordinal} rejected by filter #{stage.index} ({stage.name})")
                return False
        return True

    def run_mappers(self, item: Any, product: Product, ordinal: int) -> Product:
        """Let every mapper populate the same product; return values are ignored."""
        for stage in self._stages[StageCategory.MAPPER]:
            self._call(stage, ordinal, item, product)
        return product

    def _call(self, stage: PipelineStage, ordinal: int, *args: Any) -> Any:
        try:
            return stage.fn(*args)
        except PipelineStageError:
            raise
        except Exception as e:
            raise PipelineStageError(
                message=(
                    f"{stage.category.value.capitalize()} #{stage.index} ({stage.name}) "
                    f"failed on item {ordinal}: {e}"
                ),
                stage_category=stage.category.value,
                stage_index=stage.index,
                item_ordinal=ordinal,
                original_exception=e,
            ) from e
