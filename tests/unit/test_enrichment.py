"""
Unit tests for image lookup and the image enrichment pass
"""

from types import SimpleNamespace

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError

from core.exceptions import EnrichmentError
from ingestion.enrichment.image_sync import ImageEnricher, ScryfallImageClient, pick_image_url

PLACEHOLDER = "/images/PlaceHolder.png"


def card_json(url="https://img.test/a.jpg"):
    return {"object": "card", "image_uris": {"small": "https://img.test/small.jpg", "normal": url}}


class TestPickImageUrl:

    def test_top_level_image(self):
        assert pick_image_url(card_json()) == "https://img.test/a.jpg"

    def test_falls_back_to_first_face(self):
        data = {
            "card_faces": [
                {"image_uris": {"normal": "https://img.test/front.jpg"}},
                {"image_uris": {"normal": "https://img.test/back.jpg"}},
            ]
        }
        assert pick_image_url(data) == "https://img.test/front.jpg"

    def test_no_image(self):
        assert pick_image_url({"card_faces": [{}]}) is None
        assert pick_image_url({}) is None


class TestScryfallImageClient:

    @pytest.mark.asyncio
    async def test_returns_image_url(self):
        requested = []

        def handler(request):
            requested.append(request.url.path)
            return httpx.Response(200, json=card_json())

        async with ScryfallImageClient(
            base_url="https://api.test/cards/", transport=httpx.MockTransport(handler)
        ) as client:
            url = await client.get_image_url("sf-a")

        assert url == "https://img.test/a.jpg"
        assert requested == ["/cards/sf-a"]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        responses = [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json=card_json()),
        ]

        async with ScryfallImageClient(
            base_url="https://api.test/cards",
            backoff=0,
            transport=httpx.MockTransport(lambda request: responses.pop(0))
        ) as client:
            url = await client.get_image_url("sf-a")

        assert url == "https://img.test/a.jpg"
        assert responses == []

    @pytest.mark.asyncio
    async def test_rate_limit_retries_are_bounded(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        async with ScryfallImageClient(
            base_url="https://api.test/cards",
            max_retries=3,
            backoff=0,
            transport=httpx.MockTransport(handler)
        ) as client:
            assert await client.get_image_url("sf-a") is None

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with ScryfallImageClient(
            base_url="https://api.test/cards",
            transport=httpx.MockTransport(lambda request: httpx.Response(404, json={"object": "error"}))
        ) as client:
            assert await client.get_image_url("missing") is None

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with ScryfallImageClient(
            base_url="https://api.test/cards", transport=httpx.MockTransport(handler)
        ) as client:
            assert await client.get_image_url("sf-a") is None


def session_returning(*batches):
    """Mock session whose successive SELECTs return ``batches``"""
    results = []
    for batch in batches:
        result = MagicMock()
        result.scalars.return_value.all.return_value = batch
        results.append(result)

    session = AsyncMock()
    session.execute = AsyncMock(side_effect=results)
    return session


class TestImageEnricher:
    """Test the enrichment pass over stored cards"""

    @pytest.mark.asyncio
    async def test_sets_image_or_placeholder(self):
        found = SimpleNamespace(id=1, uuid="a", name="Bolt", scryfall_id="sf-a", image_url=None)
        missing = SimpleNamespace(id=2, uuid="b", name="Elves", scryfall_id="sf-b", image_url=PLACEHOLDER)
        session = session_returning([found, missing], [])

        client = MagicMock()
        client.get_image_url = AsyncMock(side_effect=["https://img.test/a.jpg", None])

        result = await ImageEnricher(
            session, client, batch_size=2, request_delay=0, placeholder_image=PLACEHOLDER
        ).run()

        assert result.examined == 2
        assert result.updated == 1
        assert result.placeholder == 1
        assert found.image_url == "https://img.test/a.jpg"
        assert missing.image_url == PLACEHOLDER
        session.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_short_batch_ends_the_pass(self):
        card = SimpleNamespace(id=5, uuid="a", name="Bolt", scryfall_id="sf-a", image_url=None)
        session = session_returning([card])

        client = MagicMock()
        client.get_image_url = AsyncMock(return_value="https://img.test/a.jpg")

        result = await ImageEnricher(session, client, batch_size=10, request_delay=0).run()

        assert result.updated == 1
        assert session.execute.call_count == 1

    def test_pages_by_primary_key(self):
        enricher = ImageEnricher(AsyncMock(), MagicMock(), batch_size=50)

        sql = str(enricher.pending_query(after_id=42))

        assert "cards.id >" in sql
        assert "ORDER BY cards.id" in sql
        assert "cards.image_url IS NULL" in sql

    @pytest.mark.asyncio
    async def test_database_error_is_wrapped(self):
        session = AsyncMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(EnrichmentError):
            await ImageEnricher(session, MagicMock(), request_delay=0).run()

        session.rollback.assert_called_once()
