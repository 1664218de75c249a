"""
Price extractor: reduces the price feed to the newest price point per
(vendor, transaction type, finish) for every card the filter kept.

MTGJSON price entries carry roughly 90 days of history. Only the newest
point is needed per run because history accumulates in the card store, so
the output size does not grow with feed history depth.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Tuple

import aiofiles
import ijson
import orjson

from core.exceptions import FeedFormatError, PriceSchemaError
from ingestion.ndjson import PathLike, dumps_line, iter_lines
from schemas.prices import DATE_PATTERN, PriceHistory, PriceList, parse_vendor_prices
from schemas.records import PriceRecord

SUPPORTED_VENDORS = ("tcgplayer", "cardkingdom", "cardmarket")
PRICE_FORMAT = "paper"


@dataclass
class ExtractResult:
    processed: int = 0
    kept: int = 0
    rejected: int = 0


def latest_price_point(date_map: Dict[str, float]) -> Optional[Tuple[str, float]]:
    """
    Return the (date, price) pair with the greatest ``YYYY-MM-DD`` key.

    Keys that are not dates are ignored. ISO dates order lexicographically
    the same way they order chronologically.
    """
    latest = None
    for date in date_map:
        if not DATE_PATTERN.match(date):
            continue
        if latest is None or date > latest:
            latest = date

    if latest is None:
        return None
    return latest, date_map[latest]


def build_snapshot(vendor_prices: Dict[str, PriceList]) -> PriceHistory:
    """Reduce validated vendor prices to one dated point per vendor/type/finish."""
    snapshot: PriceHistory = {}
    for vendor, price_list in vendor_prices.items():
        for transaction_type, finish, date_map in price_list.iter_points():
            point = latest_price_point(date_map)
            if point is None:
                continue
            date, value = point
            snapshot.setdefault(vendor, {}).setdefault(transaction_type, {})[finish] = {date: value}
    return snapshot


async def load_admissible_uuids(cards_path: PathLike) -> Set[str]:
    """Read the filter output into the set of uuids prices may be kept for."""
    uuids: Set[str] = set()
    async for _line_number, line in iter_lines(cards_path):
        uuids.add(orjson.loads(line)["uuid"])
    return uuids


class PriceExtractor:
    """
    Stream ``data`` of an MTGJSON prices feed and write one ``PriceRecord``
    line per admissible card that has at least one dated price.

    Entries whose supported-vendor subtree does not match the typed price
    tree are quarantined: counted as rejected, logged, and not written.
    """

    def __init__(
        self,
        cards_path: PathLike,
        prices_path: PathLike,
        output_path: PathLike,
        vendors: Iterable[str] = SUPPORTED_VENDORS,
        logger: Optional[logging.Logger] = None
    ):
        self.cards_path = Path(cards_path)
        self.prices_path = Path(prices_path)
        self.output_path = Path(output_path)
        self.vendors = tuple(vendors)
        self.logger = logger or logging.getLogger(__name__)

    async def run(self) -> ExtractResult:
        """
        Run the extractor.

        Raises:
            FeedFormatError: If the card list or the prices feed cannot be read
        """
        try:
            admissible = await load_admissible_uuids(self.cards_path)
        except (OSError, orjson.JSONDecodeError, KeyError, TypeError) as e:
            raise FeedFormatError(
                "Failed to read filtered cards",
                context={"file_path": str(self.cards_path)},
                original_exception=e
            )

        self.logger.info(
            f"Extracting prices from {self.prices_path} for {len(admissible)} cards"
        )
        result = ExtractResult()

        try:
            async with aiofiles.open(self.prices_path, "rb") as source, \
                    aiofiles.open(self.output_path, "wb") as sink:
                async for uuid, entry in ijson.kvitems_async(source, "data", use_float=True):
                    result.processed += 1

                    if uuid not in admissible:
                        continue

                    raw_prices = entry.get(PRICE_FORMAT) if isinstance(entry, dict) else None
                    try:
                        vendor_prices = parse_vendor_prices(raw_prices, self.vendors, uuid=uuid)
                    except PriceSchemaError as e:
                        result.rejected += 1
                        self.logger.warning(
                            f"Quarantined price entry {uuid}: {e.message}",
                            extra={"error_context": e.to_dict()}
                        )
                        continue

                    snapshot = build_snapshot(vendor_prices)
                    if not snapshot:
                        continue

                    record = PriceRecord(uuid=uuid, prices=snapshot)
                    await sink.write(dumps_line(record.to_wire()))
                    result.kept += 1
        except (ijson.JSONError, OSError) as e:
            raise FeedFormatError(
                "Failed to decode prices feed",
                context={
                    "file_path": str(self.prices_path),
                    "entries_read": result.processed
                },
                original_exception=e
            )

        self.logger.info(
            f"Price extraction complete: processed {result.processed}, "
            f"kept {result.kept}, rejected {result.rejected}"
        )
        return result
