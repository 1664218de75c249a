"""
Typed price tree for MTGJSON-style price feeds.

Raw feeds nest prices as ``{vendor: {retail|buylist: {finish: {date: price}}}}``
with a ``currency`` key beside the transaction types. These models validate
that shape at the decode boundary so later stages only ever see
non-negative floats under known transaction types and finishes.
"""

import re
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from pydantic import BaseModel, NonNegativeFloat, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import PriceSchemaError

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TRANSACTION_TYPES = ("retail", "buylist")
FINISHES = ("normal", "foil", "etched")

# prices[vendor][transaction_type][finish][date] = value
PriceHistory = Dict[str, Dict[str, Dict[str, Dict[str, float]]]]


class PricePoints(BaseModel):
    """Date -> price maps per finish"""
    normal: Optional[Dict[str, NonNegativeFloat]] = None
    foil: Optional[Dict[str, NonNegativeFloat]] = None
    etched: Optional[Dict[str, NonNegativeFloat]] = None

    class Config:
        extra = "ignore"


class PriceList(BaseModel):
    """One vendor's retail and buylist prices"""
    retail: Optional[PricePoints] = None
    buylist: Optional[PricePoints] = None
    currency: Optional[str] = None

    class Config:
        extra = "ignore"

    def iter_points(self) -> Iterator[Tuple[str, str, Dict[str, float]]]:
        """Yield (transaction_type, finish, date_map) for every populated finish."""
        for transaction_type in TRANSACTION_TYPES:
            points = getattr(self, transaction_type)
            if points is None:
                continue
            for finish in FINISHES:
                date_map = getattr(points, finish)
                if date_map:
                    yield transaction_type, finish, date_map


_vendor_prices_adapter = TypeAdapter(Dict[str, PriceList])


def parse_vendor_prices(
    raw_prices: Any,
    vendors: Iterable[str],
    uuid: Optional[str] = None
) -> Dict[str, PriceList]:
    """
    Validate the supported vendors of one raw price entry.

    Vendors outside ``vendors`` are ignored; a missing or null vendor is
    simply absent from the result.

    Raises:
        PriceSchemaError: If the entry or any supported vendor subtree does
            not match the expected shape
    """
    if raw_prices is None:
        return {}
    if not isinstance(raw_prices, dict):
        raise PriceSchemaError(
            "Price entry is not an object",
            context={"uuid": uuid, "type": type(raw_prices).__name__}
        )

    subset = {
        vendor: raw_prices[vendor]
        for vendor in vendors
        if raw_prices.get(vendor) is not None
    }

    try:
        return _vendor_prices_adapter.validate_python(subset)
    except PydanticValidationError as e:
        raise PriceSchemaError(
            "Price entry does not match vendor/type/finish/date shape",
            context={"uuid": uuid, "errors": e.error_count()},
            original_exception=e
        )
