"""
Pydantic schemas for data validation and serialization.

Schemas:
    prices: Typed vendor/type/finish/date price tree and feed validation
    records: NDJSON records passed between pipeline stages
    api: API endpoint response schemas

Usage:
    from schemas.records import CardRecord, MergedRecord
    from schemas.prices import parse_vendor_prices, PriceHistory
    from schemas.api import CardSummary, CardDetail
"""

__all__ = [
    "CardRecord",
    "PriceRecord",
    "MergedRecord",
    "PriceList",
    "PricePoints",
    "PriceHistory",
    "parse_vendor_prices",
    "CardSummary",
    "CardSearchResponse",
    "CardDetail",
    "HealthCheckResponse",
]
