"""
Streaming merge-join of uuid-sorted card and price files.

Both inputs are walked in lockstep with one pending record per side, so
memory use is constant regardless of file size. Only uuids present on both
sides are written (inner join). Each side is checked to be in
non-decreasing uuid order as it is read; out-of-order input aborts the join
instead of silently dropping matches.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import orjson

from core.exceptions import DataFormatError, MergeError, UnsortedInputError
from ingestion.ndjson import PathLike, dumps_line, iter_lines


@dataclass
class JoinResult:
    cards_read: int = 0
    prices_read: int = 0
    matched: int = 0


class SortedCursor:
    """Forward-only reader over a uuid-sorted NDJSON file."""

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.key: Optional[str] = None
        self.record: Optional[Dict[str, Any]] = None
        self.line_number = 0
        self.read = 0
        self._lines = iter_lines(self.path)

    async def advance(self) -> bool:
        """
        Move to the next record. Returns False once the file is exhausted.

        Raises:
            DataFormatError: If a line is not a JSON object with a string uuid
            UnsortedInputError: If the uuid is smaller than the previous one
        """
        try:
            line_number, line = await self._lines.__anext__()
        except StopAsyncIteration:
            self.record = None
            return False

        try:
            record = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            raise DataFormatError(
                "Merge input line is not valid JSON",
                context={"file_path": str(self.path), "line_number": line_number},
                original_exception=e
            )

        key = record.get("uuid") if isinstance(record, dict) else None
        if not isinstance(key, str):
            raise DataFormatError(
                "Merge input record has no uuid",
                context={"file_path": str(self.path), "line_number": line_number}
            )

        if self.key is not None and key < self.key:
            raise UnsortedInputError(
                "Merge input is not sorted by uuid",
                context={
                    "file_path": str(self.path),
                    "line_number": line_number,
                    "previous_key": self.key,
                    "current_key": key
                }
            )

        self.key = key
        self.record = record
        self.line_number = line_number
        self.read += 1
        return True

    async def close(self) -> None:
        await self._lines.aclose()


class MergeJoiner:
    """Join sorted cards with sorted price snapshots into merged records."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def join(
        self,
        cards_path: PathLike,
        prices_path: PathLike,
        output_path: PathLike
    ) -> JoinResult:
        """
        Write one merged record per uuid found in both inputs.

        The price side's ``prices`` replaces any ``prices`` on the card side.

        Raises:
            UnsortedInputError: If either input is out of order
            DataFormatError: If either input holds an unusable line
            MergeError: If a file cannot be read or written
        """
        self.logger.info(f"Merging {cards_path} with {prices_path}")
        result = JoinResult()

        cards = SortedCursor(cards_path)
        prices = SortedCursor(prices_path)

        try:
            async with aiofiles.open(output_path, "wb") as sink:
                has_card = await cards.advance()
                has_price = await prices.advance()

                while has_card and has_price:
                    if cards.key < prices.key:
                        has_card = await cards.advance()
                    elif prices.key < cards.key:
                        has_price = await prices.advance()
                    else:
                        merged = {**cards.record, "prices": prices.record.get("prices", {})}
                        await sink.write(dumps_line(merged))
                        result.matched += 1

                        has_card = await cards.advance()
                        has_price = await prices.advance()
        except OSError as e:
            raise MergeError(
                "Failed to merge sorted files",
                context={
                    "cards_path": str(cards_path),
                    "prices_path": str(prices_path),
                    "output_path": str(output_path)
                },
                original_exception=e
            )
        finally:
            await cards.close()
            await prices.close()

        result.cards_read = cards.read
        result.prices_read = prices.read

        if result.matched == 0:
            self.logger.info("Merge found no matching uuids")

        self.logger.info(
            f"Merge complete: {result.cards_read} cards read, "
            f"{result.prices_read} price records read, {result.matched} merged"
        )
        return result
