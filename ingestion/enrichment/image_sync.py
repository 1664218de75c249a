"""
Image enrichment pass.

Looks up card images for stored cards that still have no image (or only the
placeholder) and writes the result back. Rate limiting (HTTP 429) is retried
with bounded exponential backoff; any final failure leaves the placeholder
in place so the card is retried on the next run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import EnrichmentError
from models.card import CardItem


@dataclass
class EnrichResult:
    examined: int = 0
    updated: int = 0
    placeholder: int = 0


def pick_image_url(card_data: Dict[str, Any]) -> Optional[str]:
    """Normal-size image of the card, falling back to its first face."""
    image_uris = card_data.get("image_uris") or {}
    if image_uris.get("normal"):
        return image_uris["normal"]

    faces = card_data.get("card_faces") or []
    if faces:
        face_uris = faces[0].get("image_uris") or {}
        if face_uris.get("normal"):
            return face_uris["normal"]

    return None


class ScryfallImageClient:
    """Resolve a Scryfall id to an image URL."""

    def __init__(
        self,
        base_url: str = settings.IMAGE_API_URL,
        max_retries: int = settings.IMAGE_MAX_RETRIES,
        backoff: float = settings.IMAGE_RETRY_BACKOFF,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.logger = logger or logging.getLogger(__name__)
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ScryfallImageClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return self.backoff * (2 ** attempt)

    async def get_image_url(self, scryfall_id: str) -> Optional[str]:
        """Return the image URL, or None when it cannot be found."""
        url = f"{self.base_url}/{scryfall_id}"

        for attempt in range(self.max_retries):
            try:
                response = await self.client.get(url)
            except httpx.HTTPError as e:
                self.logger.warning(f"Image lookup for {scryfall_id} failed: {e}")
                return None

            if response.status_code == 429:
                if attempt < self.max_retries - 1:
                    delay = self._retry_delay(response, attempt)
                    self.logger.warning(
                        f"Rate limited by image service. Waiting {delay} seconds "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                self.logger.warning(
                    f"Still rate limited after {self.max_retries} attempts, giving up on {scryfall_id}"
                )
                return None

            if not response.is_success:
                return None

            try:
                return pick_image_url(response.json())
            except ValueError:
                self.logger.warning(f"Image lookup for {scryfall_id} returned invalid JSON")
                return None

        return None


class ImageEnricher:
    """
    Fill ``image_url`` for stored cards that have a Scryfall id but no image.

    Cards are walked in primary-key order (keyset pagination), so rows updated
    during the pass never shift the window.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: ScryfallImageClient,
        batch_size: int = settings.IMAGE_BATCH_SIZE,
        request_delay: float = settings.IMAGE_REQUEST_DELAY,
        placeholder_image: str = settings.IMAGE_PLACEHOLDER,
        logger: Optional[logging.Logger] = None
    ):
        self.db = db_session
        self.client = client
        self.batch_size = batch_size
        self.request_delay = request_delay
        self.placeholder_image = placeholder_image
        self.logger = logger or logging.getLogger(__name__)

    def pending_query(self, after_id: int):
        return (
            select(CardItem)
            .where(
                CardItem.id > after_id,
                CardItem.scryfall_id.isnot(None),
                or_(
                    CardItem.image_url.is_(None),
                    CardItem.image_url == self.placeholder_image
                )
            )
            .order_by(CardItem.id)
            .limit(self.batch_size)
        )

    async def run(self) -> EnrichResult:
        """
        Run the enrichment pass.

        Raises:
            EnrichmentError: If the card store cannot be read or written
        """
        result = EnrichResult()
        last_id = 0

        try:
            while True:
                rows = await self.db.execute(self.pending_query(last_id))
                cards = rows.scalars().all()
                if not cards:
                    break

                self.logger.info(f"Processing {len(cards)} cards after id {last_id}...")

                for card in cards:
                    result.examined += 1
                    url = await self.client.get_image_url(card.scryfall_id)

                    if url:
                        card.image_url = url
                        result.updated += 1
                        self.logger.debug(f"Updated image for {card.name} ({card.uuid})")
                    else:
                        card.image_url = self.placeholder_image
                        result.placeholder += 1
                        self.logger.warning(
                            f"No image found for {card.name} ({card.uuid}), set to placeholder"
                        )

                    if self.request_delay:
                        await asyncio.sleep(self.request_delay)

                await self.db.commit()
                last_id = cards[-1].id

                if len(cards) < self.batch_size:
                    break

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise EnrichmentError(
                "Image enrichment failed",
                context={"last_id": last_id, "examined": result.examined},
                original_exception=e
            )

        self.logger.info(
            f"Image enrichment complete: {result.examined} examined, "
            f"{result.updated} updated, {result.placeholder} left as placeholder"
        )
        return result
