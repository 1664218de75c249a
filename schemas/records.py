"""
Records exchanged between pipeline stages as NDJSON lines.

Wire names follow the MTGJSON feeds (``setCode``, ``scryfallId``,
``purchaseUrls``); Python attributes are snake_case. The identifiers feed
keeps ``scryfallId`` inside ``identifiers``; records carry it at the top level.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from schemas.prices import PriceHistory


class CardRecord(BaseModel):
    """Minimal card kept by the filter stage"""
    uuid: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    set_code: str = Field(..., alias="setCode", min_length=1)
    language: str
    scryfall_id: Optional[str] = Field(None, alias="scryfallId")
    purchase_urls: Optional[Dict[str, Any]] = Field(None, alias="purchaseUrls")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def lift_scryfall_id(cls, data: Any) -> Any:
        """MTGJSON nests the Scryfall id under ``identifiers``; the top-level key wins."""
        if not isinstance(data, dict) or data.get("scryfallId") or data.get("scryfall_id"):
            return data
        identifiers = data.get("identifiers")
        if isinstance(identifiers, dict) and identifiers.get("scryfallId"):
            return {**data, "scryfallId": identifiers["scryfallId"]}
        return data

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PriceRecord(BaseModel):
    """Latest price point per (vendor, type, finish) for one card"""
    uuid: str = Field(..., min_length=1)
    prices: PriceHistory

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump()


class MergedRecord(CardRecord):
    """Card joined with its price snapshot"""
    prices: PriceHistory = Field(default_factory=dict)

    def identity_fields(self) -> Dict[str, Any]:
        """Columns written only when the card is first inserted."""
        return {
            "uuid": self.uuid,
            "name": self.name,
            "set_code": self.set_code,
            "language": self.language,
            "scryfall_id": self.scryfall_id,
            "purchase_urls": self.purchase_urls,
        }
