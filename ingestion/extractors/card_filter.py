"""
Card filter: streams the identifiers feed and keeps canonical-language cards.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import ijson
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import FeedFormatError
from ingestion.ndjson import PathLike, dumps_line
from schemas.records import CardRecord

REQUIRED_FIELDS = ("uuid", "name", "setCode")


@dataclass
class FilterResult:
    total: int = 0
    kept: int = 0


def is_canonical_card(entry: Any, canonical_language: str) -> bool:
    """True when the entry is in the canonical language and has every required field."""
    if not isinstance(entry, dict):
        return False
    if entry.get("language") != canonical_language:
        return False
    return all(entry.get(field) for field in REQUIRED_FIELDS)


class CardFilter:
    """
    Stream ``data`` of an MTGJSON identifiers feed and emit one
    ``CardRecord`` line per card that passes ``is_canonical_card``.

    The feed is decoded incrementally with ijson, so memory use does not
    depend on the feed size.
    """

    def __init__(
        self,
        input_path: PathLike,
        output_path: PathLike,
        canonical_language: str = "English",
        logger: Optional[logging.Logger] = None
    ):
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.canonical_language = canonical_language
        self.logger = logger or logging.getLogger(__name__)

    def to_record(self, entry: Dict[str, Any]) -> Optional[CardRecord]:
        try:
            return CardRecord.model_validate(entry)
        except PydanticValidationError as e:
            self.logger.debug(f"Dropping card {entry.get('uuid')}: {e.error_count()} invalid fields")
            return None

    async def run(self) -> FilterResult:
        """
        Run the filter.

        Raises:
            FeedFormatError: If the feed is missing or its top-level
                structure cannot be decoded
        """
        self.logger.info(f"Filtering cards from {self.input_path}")
        result = FilterResult()

        try:
            async with aiofiles.open(self.input_path, "rb") as source, \
                    aiofiles.open(self.output_path, "wb") as sink:
                async for _key, entry in ijson.kvitems_async(source, "data", use_float=True):
                    result.total += 1

                    if not is_canonical_card(entry, self.canonical_language):
                        continue

                    record = self.to_record(entry)
                    if record is None:
                        continue

                    await sink.write(dumps_line(record.to_wire()))
                    result.kept += 1
        except (ijson.JSONError, OSError) as e:
            raise FeedFormatError(
                "Failed to decode identifiers feed",
                context={
                    "file_path": str(self.input_path),
                    "entries_read": result.total
                },
                original_exception=e
            )

        self.logger.info(
            f"Card filter complete: {result.total} total entries, {result.kept} cards written"
        )
        return result
