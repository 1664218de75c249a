"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class SyncRunInfo(BaseModel):
    """Last pipeline run, as reported by the health check"""
    run_id: str
    status: SyncStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    records_loaded: int = 0
    records_failed: int = 0
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    last_sync: Optional[SyncRunInfo] = None
    total_cards: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.last_sync is not None and self.last_sync.status in (
            SyncStatus.FAILED.value,
            SyncStatus.PARTIAL.value,
        ):
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self


# ============================================================================
# Card Schemas
# ============================================================================

class CardSummary(BaseModel):
    """Search result row with cross-vendor price summary"""
    uuid: str
    name: str
    set: str
    image_url: Optional[str] = Field(None, alias="imageUrl")
    avg_retail: Optional[float] = Field(None, alias="avgRetail")
    avg_buylist: Optional[float] = Field(None, alias="avgBuylist")
    weekly_change_pct: Optional[float] = Field(None, alias="weeklyChangePct")
    weekly_change_buylist_pct: Optional[float] = Field(None, alias="weeklyChangeBuylistPct")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "uuid": "5f8287b1-5bb6-5f4c-ad17-316a40d5bb0c",
                "name": "Lightning Bolt",
                "set": "M10",
                "imageUrl": "/images/PlaceHolder.png",
                "avgRetail": 2.41,
                "avgBuylist": 1.1,
                "weeklyChangePct": -3.5,
                "weeklyChangeBuylistPct": None
            }
        }


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class CardSearchResponse(BaseModel):
    """Paginated card search response"""
    items: List[CardSummary]
    pagination: PaginationMetadata
    filters_applied: Dict[str, Any] = Field(default_factory=dict)


class RandomCardResponse(BaseModel):
    uuid: str


class PriceAggregate(BaseModel):
    """Low/avg/high of the latest prices across vendors"""
    low: Optional[float] = None
    avg: Optional[float] = None
    high: Optional[float] = None


class VendorBreakdown(BaseModel):
    """Latest price per transaction type and finish for one vendor"""
    vendor: str
    purchase_url: Optional[str] = Field(None, alias="purchaseUrl")
    prices: Dict[str, Dict[str, Optional[float]]]

    class Config:
        populate_by_name = True


class HistoryPoint(BaseModel):
    """Cross-vendor average per finish on one date"""
    date: str
    retail: Dict[str, Optional[float]]
    buylist: Dict[str, Optional[float]]


class CardDetail(BaseModel):
    """Full card detail with vendor breakdown and price history"""
    uuid: str
    name: str
    set: str
    language: str
    image_url: Optional[str] = Field(None, alias="imageUrl")
    finishes: List[str]
    prices: Dict[str, Dict[str, PriceAggregate]]
    vendors: List[VendorBreakdown]
    history: List[HistoryPoint]

    class Config:
        populate_by_name = True

