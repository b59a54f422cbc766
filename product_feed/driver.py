"""
Item driver: pulls items lazily from an external source, one at a time.
"""

import json
import logging
from typing import Any, Iterable, Iterator, Tuple, Union

from product_feed.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ItemDriver:
    """
    Wraps any iterable as a finite, non-restartable sequence of items.

    The source is never materialized: lists, generators and database
    cursors are all consumed through a single iterator. Iterating the
    driver yields ``(ordinal, item)`` pairs with 1-based ordinals.
    """

    def __init__(self, source: Iterable[Any]):
        try:
            self._iterator = iter(source)
        except TypeError as e:
            raise ConfigurationError(
                message=f"Item source of type {type(source).__name__} is not iterable",
                config_key="source",
                original_exception=e,
            ) from e
        self._started = False
        self.pulled_count = 0

    def __iter__(self) -> Iterator[Tuple[int, Any]]:
        if self._started:
            raise RuntimeError("ItemDriver cannot be restarted")
        self._started = True
        return self._pull()

    def _pull(self) -> Iterator[Tuple[int, Any]]:
        for item in self._iterator:
            self.pulled_count += 1
            yield self.pulled_count, item
        logger.debug(f"Source exhausted after {self.pulled_count} items")


def iter_json_lines(
    lines: Iterable[Union[str, bytes]],
    encoding: str = "utf-8",
) -> Iterator[Any]:
    """
    Decode a JSON-lines stream lazily, skipping blank lines.

    Args:
        lines: File object or any iterable of text/bytes lines
        encoding: Encoding used for bytes lines

    Yields:
        One decoded JSON value per non-blank line

    Raises:
        ValueError: If a line is not valid JSON
    """
    for line_number, line in enumerate(lines, start=1):
        if isinstance(line, bytes):
            line = line.decode(encoding)
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON on line {line_number}: {e}") from e
        yield record


def open_json_lines(path: str, encoding: str = "utf-8") -> Iterator[Any]:
    """Yield records from a local JSON-lines file, closing it once exhausted."""
    with open(path, encoding=encoding) as handle:
        yield from iter_json_lines(handle)
