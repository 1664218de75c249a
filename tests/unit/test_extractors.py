"""
Unit tests for the download, card filter and price extraction stages
"""

import httpx
import pytest

from core.exceptions import DownloadError, FeedFormatError, NetworkError
from ingestion.extractors.card_filter import CardFilter, is_canonical_card
from ingestion.extractors.downloader import FeedDownloader
from ingestion.extractors.price_extractor import PriceExtractor, latest_price_point
from tests.helpers import read_ndjson, write_json


class TestCardFilter:
    """Test the canonical-language card filter"""

    @pytest.mark.asyncio
    async def test_keeps_only_complete_canonical_cards(self, identifiers_feed, tmp_path):
        output = tmp_path / "parsedCards.ndjson"

        result = await CardFilter(identifiers_feed, output).run()

        assert result.total == 5
        assert result.kept == 3

        records = read_ndjson(output)
        assert sorted(r["uuid"] for r in records) == ["uuid-a", "uuid-b", "uuid-c"]
        assert all(r["language"] == "English" for r in records)

    @pytest.mark.asyncio
    async def test_output_uses_feed_field_names(self, identifiers_feed, tmp_path):
        output = tmp_path / "parsedCards.ndjson"
        await CardFilter(identifiers_feed, output).run()

        by_uuid = {r["uuid"]: r for r in read_ndjson(output)}

        assert by_uuid["uuid-b"] == {
            "uuid": "uuid-b",
            "name": "Llanowar Elves",
            "setCode": "M19",
            "language": "English",
            "scryfallId": "sf-b",
            "purchaseUrls": {"tcgplayer": "https://example.com/tcg/b"},
        }
        # Optional fields are omitted rather than written as null
        assert "scryfallId" not in by_uuid["uuid-c"]

    @pytest.mark.asyncio
    async def test_scryfall_id_read_from_identifiers(self, tmp_path):
        base = {"name": "Lightning Bolt", "setCode": "M10", "language": "English"}
        feed = write_json(tmp_path / "AllIdentifiers.json", {"data": {
            "u1": {**base, "uuid": "u1", "identifiers": {"scryfallId": "sf-1"}},
            "u2": {**base, "uuid": "u2", "scryfallId": "sf-top", "identifiers": {"scryfallId": "sf-nested"}},
            "u3": {**base, "uuid": "u3", "identifiers": {"mtgjsonV4Id": "x"}},
        }})
        output = tmp_path / "parsedCards.ndjson"

        await CardFilter(feed, output).run()

        by_uuid = {r["uuid"]: r for r in read_ndjson(output)}
        assert by_uuid["u1"]["scryfallId"] == "sf-1"
        assert by_uuid["u2"]["scryfallId"] == "sf-top"
        assert "scryfallId" not in by_uuid["u3"]
        assert "identifiers" not in by_uuid["u1"]

    @pytest.mark.asyncio
    async def test_other_canonical_language(self, identifiers_feed, tmp_path):
        output = tmp_path / "parsedCards.ndjson"

        result = await CardFilter(identifiers_feed, output, canonical_language="German").run()

        assert result.kept == 1
        assert read_ndjson(output)[0]["uuid"] == "uuid-e"

    def test_is_canonical_card_requires_fields(self):
        complete = {"uuid": "u", "name": "n", "setCode": "S", "language": "English"}

        assert is_canonical_card(complete, "English") is True
        assert is_canonical_card({**complete, "setCode": ""}, "English") is False
        assert is_canonical_card({**complete, "language": "French"}, "English") is False
        assert is_canonical_card(["not", "a", "card"], "English") is False

    @pytest.mark.asyncio
    async def test_missing_feed_raises(self, tmp_path):
        with pytest.raises(FeedFormatError):
            await CardFilter(tmp_path / "missing.json", tmp_path / "out.ndjson").run()

    @pytest.mark.asyncio
    async def test_truncated_feed_raises(self, tmp_path):
        feed = tmp_path / "AllIdentifiers.json"
        feed.write_text('{"data": {"uuid-a": {"uuid": "uuid-a", "name": ', encoding="utf-8")

        with pytest.raises(FeedFormatError) as exc_info:
            await CardFilter(feed, tmp_path / "out.ndjson").run()

        assert exc_info.value.context["file_path"] == str(feed)


class TestLatestPricePoint:

    def test_selects_greatest_date(self):
        date_map = {"2024-01-01": 10, "2024-01-03": 12, "2024-01-02": 11}

        assert latest_price_point(date_map) == ("2024-01-03", 12)

    def test_ignores_non_date_keys(self):
        assert latest_price_point({"2024-01-01": 1.0, "latest": 99.0}) == ("2024-01-01", 1.0)

    def test_empty_map(self):
        assert latest_price_point({}) is None


class TestPriceExtractor:
    """Test reduction of the prices feed to the newest points"""

    @pytest.mark.asyncio
    async def test_extracts_latest_point_per_vendor_type_finish(self, identifiers_feed, prices_feed, tmp_path):
        cards = tmp_path / "parsedCards.ndjson"
        await CardFilter(identifiers_feed, cards).run()
        output = tmp_path / "parsedPrices.ndjson"

        result = await PriceExtractor(cards, prices_feed, output).run()

        assert result.processed == 5
        assert result.kept == 2
        assert result.rejected == 1

        by_uuid = {r["uuid"]: r["prices"] for r in read_ndjson(output)}
        assert set(by_uuid) == {"uuid-a", "uuid-b"}
        assert by_uuid["uuid-a"] == {
            "tcgplayer": {
                "retail": {"normal": {"2024-01-03": 12.0}},
                "buylist": {"normal": {"2024-01-03": 8.5}},
            },
            "cardkingdom": {
                "retail": {"normal": {"2024-01-03": 13.0}, "foil": {"2024-01-03": 30.0}},
            },
        }
        assert by_uuid["uuid-b"] == {"cardmarket": {"retail": {"normal": {"2024-01-03": 0.3}}}}

    @pytest.mark.asyncio
    async def test_prices_for_filtered_out_cards_are_dropped(self, identifiers_feed, prices_feed, tmp_path):
        cards = tmp_path / "parsedCards.ndjson"
        await CardFilter(identifiers_feed, cards).run()
        output = tmp_path / "parsedPrices.ndjson"

        await PriceExtractor(cards, prices_feed, output).run()

        uuids = {r["uuid"] for r in read_ndjson(output)}
        assert "uuid-d" not in uuids
        assert "uuid-z" not in uuids

    @pytest.mark.asyncio
    async def test_vendor_selection(self, identifiers_feed, prices_feed, tmp_path):
        cards = tmp_path / "parsedCards.ndjson"
        await CardFilter(identifiers_feed, cards).run()
        output = tmp_path / "parsedPrices.ndjson"

        result = await PriceExtractor(cards, prices_feed, output, vendors=["cardmarket"]).run()

        assert result.kept == 1
        assert read_ndjson(output)[0]["uuid"] == "uuid-b"

    @pytest.mark.asyncio
    async def test_card_without_paper_prices_is_skipped(self, tmp_path):
        cards = tmp_path / "parsedCards.ndjson"
        cards.write_text('{"uuid": "uuid-a", "name": "A", "setCode": "S", "language": "English"}\n')
        prices = write_json(tmp_path / "AllPrices.json", {
            "data": {"uuid-a": {"mtgo": {"cardhoarder": {"retail": {"normal": {"2024-01-03": 1.0}}}}}}
        })
        output = tmp_path / "parsedPrices.ndjson"

        result = await PriceExtractor(cards, prices, output).run()

        assert result.kept == 0
        assert result.rejected == 0
        assert output.read_bytes() == b""

    @pytest.mark.asyncio
    async def test_missing_card_list_raises(self, prices_feed, tmp_path):
        with pytest.raises(FeedFormatError):
            await PriceExtractor(tmp_path / "missing.ndjson", prices_feed, tmp_path / "out.ndjson").run()


class TestFeedDownloader:
    """Test streaming download with retry"""

    @pytest.mark.asyncio
    async def test_download_writes_body(self, tmp_path):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b'{"data": {}}'))
        destination = tmp_path / "feeds" / "AllPrices.json"

        result = await FeedDownloader(transport=transport).download("https://feeds.test/AllPrices.json", destination)

        assert result == destination
        assert destination.read_bytes() == b'{"data": {}}'

    @pytest.mark.asyncio
    async def test_retries_transient_status(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b"ok")

        downloader = FeedDownloader(max_retries=3, retry_delay=0, transport=httpx.MockTransport(handler))
        destination = tmp_path / "feed.json"

        await downloader.download("https://feeds.test/feed.json", destination)

        assert len(calls) == 3
        assert destination.read_bytes() == b"ok"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(429)

        downloader = FeedDownloader(max_retries=2, retry_delay=0, transport=httpx.MockTransport(handler))
        destination = tmp_path / "feed.json"

        with pytest.raises(NetworkError) as exc_info:
            await downloader.download("https://feeds.test/feed.json", destination)

        assert len(calls) == 2
        assert exc_info.value.context["retry_count"] == 2
        assert not destination.exists()

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(404)

        downloader = FeedDownloader(max_retries=3, retry_delay=0, transport=httpx.MockTransport(handler))
        destination = tmp_path / "feed.json"

        with pytest.raises(DownloadError) as exc_info:
            await downloader.download("https://feeds.test/feed.json", destination)

        assert not isinstance(exc_info.value, NetworkError)
        assert exc_info.value.context["status_code"] == 404
        assert len(calls) == 1
        assert not destination.exists()
