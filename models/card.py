from sqlalchemy import Column, String, BigInteger, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from core.config import settings
from models.base import Base


class CardItem(Base):
    """
    One printing of one card, with its accumulated price history.

    Identity fields (name, set_code, language, scryfall_id, purchase_urls)
    are written only when the row is first inserted. ``prices`` is rewritten
    on every sync with the merged history:

        prices[vendor][retail|buylist][finish][YYYY-MM-DD] = value

    ``image_url`` is filled lazily by the image enrichment pass.
    """
    __tablename__ = "cards"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    uuid = Column(String(64), unique=True, nullable=False, index=True)

    # Identity
    name = Column(String(500), nullable=False, index=True)
    set_code = Column(String(20), nullable=False, index=True)
    language = Column(String(50), nullable=False)
    scryfall_id = Column(String(64), nullable=True)
    purchase_urls = Column(JSONB, nullable=True)

    # Price history document
    prices = Column(JSONB, nullable=False, default=dict)

    image_url = Column(String(2048), nullable=True, default=settings.IMAGE_PLACEHOLDER)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_cards_image_pending", "image_url", "id"),
    )
