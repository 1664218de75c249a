"""
Price summaries computed from a card's stored price history.

All functions are pure: they take the ``prices`` tree of one card
(vendor -> transaction type -> finish -> date -> price) and never touch the
database. Dates are ISO strings, so lexical order is chronological.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from schemas.prices import FINISHES, TRANSACTION_TYPES, PriceHistory

VENDORS = ("tcgplayer", "cardkingdom", "cardmarket")

# Price feed vendor names that differ from their purchaseUrls key
PURCHASE_URL_KEYS = {"cardkingdom": "cardKingdom"}

# The weekly change compares the latest price with the one this many
# recorded dates back (inclusive of the latest).
WEEK_WINDOW = 7


def round2(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _date_map(prices: PriceHistory, vendor: str, transaction_type: str, finish: str) -> Dict[str, Any]:
    node = (prices or {}).get(vendor) or {}
    node = node.get(transaction_type) or {}
    dates = node.get(finish)
    return dates if isinstance(dates, dict) else {}


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def latest_price(
    prices: PriceHistory,
    vendor: str,
    transaction_type: str,
    finish: str = "normal"
) -> Optional[float]:
    dates = _date_map(prices, vendor, transaction_type, finish)
    if not dates:
        return None
    return _number(dates[max(dates)])


def week_ago_price(
    prices: PriceHistory,
    vendor: str,
    transaction_type: str,
    finish: str = "normal"
) -> Optional[float]:
    """Price ``WEEK_WINDOW`` recorded dates back, or None with fewer dates."""
    date_map = _date_map(prices, vendor, transaction_type, finish)
    if len(date_map) < WEEK_WINDOW:
        return None
    return _number(date_map[sorted(date_map)[-WEEK_WINDOW]])


def average_latest(prices: PriceHistory, transaction_type: str, vendors: Iterable[str] = VENDORS) -> Optional[float]:
    """Mean of each vendor's latest ``normal`` price."""
    values = [
        value for value in (latest_price(prices, vendor, transaction_type) for vendor in vendors)
        if value is not None
    ]
    return round2(mean(values))


def weekly_change_pct(prices: PriceHistory, transaction_type: str, vendors: Iterable[str] = VENDORS) -> Optional[float]:
    """Mean over vendors of the percent change from a week ago to latest."""
    changes = []
    for vendor in vendors:
        latest = latest_price(prices, vendor, transaction_type)
        week_ago = week_ago_price(prices, vendor, transaction_type)
        if latest is not None and week_ago:
            changes.append((latest - week_ago) / week_ago * 100)
    return round2(mean(changes))


def summarize_card(card: Any, vendors: Iterable[str] = VENDORS) -> Dict[str, Any]:
    """Search-result summary for one stored card."""
    vendors = tuple(vendors)
    prices = card.prices or {}
    return {
        "uuid": card.uuid,
        "name": card.name,
        "set": card.set_code,
        "imageUrl": card.image_url,
        "avgRetail": average_latest(prices, "retail", vendors),
        "avgBuylist": average_latest(prices, "buylist", vendors),
        "weeklyChangePct": weekly_change_pct(prices, "retail", vendors),
        "weeklyChangeBuylistPct": weekly_change_pct(prices, "buylist", vendors),
    }


def collect_finishes(prices: PriceHistory, vendors: Iterable[str] = VENDORS) -> List[str]:
    """Every finish that appears for any vendor and type, known finishes first."""
    seen: Dict[str, None] = {}
    for vendor in vendors:
        for transaction_type in TRANSACTION_TYPES:
            node = ((prices or {}).get(vendor) or {}).get(transaction_type) or {}
            for finish in node:
                seen[finish] = None
    known = [finish for finish in FINISHES if finish in seen]
    return known + [finish for finish in seen if finish not in FINISHES]


def purchase_url(purchase_urls: Optional[Dict[str, Any]], vendor: str) -> Optional[str]:
    urls = purchase_urls or {}
    return urls.get(PURCHASE_URL_KEYS.get(vendor, vendor)) or urls.get(vendor)


def vendor_breakdown(
    prices: PriceHistory,
    purchase_urls: Optional[Dict[str, Any]],
    finishes: Sequence[str],
    vendors: Iterable[str] = VENDORS
) -> List[Dict[str, Any]]:
    breakdown = []
    for vendor in vendors:
        breakdown.append({
            "vendor": vendor,
            "purchaseUrl": purchase_url(purchase_urls, vendor),
            "prices": {
                transaction_type: {
                    finish: latest_price(prices, vendor, transaction_type, finish)
                    for finish in finishes
                }
                for transaction_type in TRANSACTION_TYPES
            }
        })
    return breakdown


def price_aggregates(
    breakdown: Sequence[Dict[str, Any]],
    finishes: Sequence[str]
) -> Dict[str, Dict[str, Dict[str, Optional[float]]]]:
    """Low/avg/high of the vendors' latest prices per type and finish."""
    aggregates = {}
    for transaction_type in TRANSACTION_TYPES:
        aggregates[transaction_type] = {}
        for finish in finishes:
            values = [
                row["prices"][transaction_type][finish] for row in breakdown
                if row["prices"][transaction_type][finish] is not None
            ]
            aggregates[transaction_type][finish] = {
                "low": round2(min(values)) if values else None,
                "avg": round2(mean(values)),
                "high": round2(max(values)) if values else None,
            }
    return aggregates


def price_history(
    prices: PriceHistory,
    finishes: Sequence[str],
    vendors: Iterable[str] = VENDORS
) -> List[Dict[str, Any]]:
    """One point per recorded date with the cross-vendor mean per finish."""
    vendors = tuple(vendors)
    dates = set()
    for vendor in vendors:
        for transaction_type in TRANSACTION_TYPES:
            for finish in finishes:
                dates.update(_date_map(prices, vendor, transaction_type, finish))

    history = []
    for date in sorted(dates):
        point: Dict[str, Any] = {"date": date}
        for transaction_type in TRANSACTION_TYPES:
            point[transaction_type] = {}
            for finish in finishes:
                values = []
                for vendor in vendors:
                    value = _number(_date_map(prices, vendor, transaction_type, finish).get(date))
                    if value is not None:
                        values.append(value)
                point[transaction_type][finish] = round2(mean(values))
        history.append(point)
    return history


def card_detail(card: Any, vendors: Iterable[str] = VENDORS) -> Dict[str, Any]:
    """Full detail view for one stored card."""
    vendors = tuple(vendors)
    prices = card.prices or {}
    finishes = collect_finishes(prices, vendors)
    breakdown = vendor_breakdown(prices, card.purchase_urls, finishes, vendors)

    return {
        "uuid": card.uuid,
        "name": card.name,
        "set": card.set_code,
        "language": card.language,
        "imageUrl": card.image_url,
        "finishes": finishes,
        "prices": price_aggregates(breakdown, finishes),
        "vendors": breakdown,
        "history": price_history(prices, finishes, vendors),
    }
