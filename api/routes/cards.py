"""
Card search, random pick and detail endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.aggregates import card_detail, summarize_card
from api.dependencies import get_db
from schemas.api import CardDetail, CardSearchResponse, CardSummary, PaginationMetadata, RandomCardResponse
from models.card import CardItem
from typing import Optional
import time
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Cards"])


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@router.get("/cards", response_model=CardSearchResponse, response_model_by_alias=True)
async def search_cards(
    request: Request,
    name: Optional[str] = Query(None, description="Case-insensitive substring of the card name"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Cards per page"),
    db: AsyncSession = Depends(get_db)
):
    """
    Search cards by (partial) name.

    Each result carries the cross-vendor average of the latest retail and
    buylist prices and the average weekly change.
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    logger.info(f"[{request_id}] GET /cards - name={name}, page={page}, limit={limit}")

    query = select(CardItem)
    if name:
        query = query.where(CardItem.name.ilike(f"%{escape_like(name)}%", escape="\\"))

    # One extra row tells us whether another page exists without a COUNT.
    query = query.order_by(CardItem.name, CardItem.uuid).offset((page - 1) * limit).limit(limit + 1)

    result = await db.execute(query)
    cards = result.scalars().all()
    has_next = len(cards) > limit
    cards = cards[:limit]

    items = [CardSummary(**summarize_card(card)) for card in cards]

    logger.info(
        f"[{request_id}] Returned {len(items)} cards in {(time.time() - start_time) * 1000:.2f}ms"
    )

    return CardSearchResponse(
        items=items,
        pagination=PaginationMetadata(
            current_page=page,
            page_size=limit,
            has_next=has_next,
            has_previous=page > 1
        ),
        filters_applied={"name": name} if name else {}
    )


@router.get("/cards/random", response_model=RandomCardResponse)
async def random_card(db: AsyncSession = Depends(get_db)):
    """uuid of one random card; clients follow up with /cards/{uuid}"""
    result = await db.execute(
        select(CardItem.uuid).order_by(func.random()).limit(1)
    )
    card_uuid = result.scalar_one_or_none()

    if card_uuid is None:
        raise HTTPException(status_code=404, detail="No cards found in database")

    return RandomCardResponse(uuid=card_uuid)


@router.get("/cards/{card_uuid}", response_model=CardDetail, response_model_by_alias=True)
async def get_card(card_uuid: str, db: AsyncSession = Depends(get_db)):
    """Full detail for one card: per-vendor prices, aggregates and history"""
    result = await db.execute(
        select(CardItem).where(CardItem.uuid == card_uuid)
    )
    card = result.scalar_one_or_none()

    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")

    return CardDetail(**card_detail(card))
