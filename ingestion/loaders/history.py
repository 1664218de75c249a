"""
Price history accumulation.
"""

import copy
from typing import Any, Dict, Optional

from schemas.prices import PriceHistory


def _child(node: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = node.get(key)
    if not isinstance(value, dict):
        value = {}
        node[key] = value
    return value


def merge_price_history(
    existing: Optional[PriceHistory],
    incoming: PriceHistory
) -> PriceHistory:
    """
    Deep-merge an incoming snapshot into stored history.

    Every (vendor, type, finish, date) in ``incoming`` is set on the result,
    overwriting a stored value for the same date. Stored dates that are not
    in ``incoming`` are kept. Neither argument is modified.

    Example:
        >>> merge_price_history(
        ...     {"tcgplayer": {"retail": {"normal": {"2024-01-01": 5}}}},
        ...     {"tcgplayer": {"retail": {"normal": {"2024-01-02": 6}}}},
        ... )
        {'tcgplayer': {'retail': {'normal': {'2024-01-01': 5, '2024-01-02': 6}}}}
    """
    merged: PriceHistory = copy.deepcopy(existing) if existing else {}

    for vendor, transaction_types in incoming.items():
        vendor_node = _child(merged, vendor)
        for transaction_type, finishes in transaction_types.items():
            type_node = _child(vendor_node, transaction_type)
            for finish, dates in finishes.items():
                _child(type_node, finish).update(dates)

    return merged
