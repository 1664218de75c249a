"""
API endpoint tests
"""

from datetime import datetime
from types import SimpleNamespace
import uuid

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError

from api.main import app
from api.dependencies import get_db
from models.base import SyncStatus


def result_with(scalar=None, rows=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = rows or []
    return result


def stored_card(card_uuid="uuid-a", name="Lightning Bolt", prices=None):
    return SimpleNamespace(
        id=1,
        uuid=card_uuid,
        name=name,
        set_code="M10",
        language="English",
        scryfall_id="sf-a",
        image_url="https://img.test/a.jpg",
        purchase_urls={"tcgplayer": "https://example.com/tcg/a"},
        prices=prices if prices is not None else {
            "tcgplayer": {"retail": {"normal": {"2024-01-02": 2.0, "2024-01-03": 3.0}}},
            "cardkingdom": {"retail": {"normal": {"2024-01-03": 5.0}}},
        },
    )


@pytest.fixture
def db_session():
    session = AsyncMock()
    return session


@pytest.fixture
def client(db_session):
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    yield TestClient(app)

    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/health"
    assert "X-Request-ID" in response.headers
    assert "X-API-Latency-ms" in response.headers


def test_request_id_is_propagated(client):
    response = client.get("/", headers={"X-Request-ID": "req_fixed"})

    assert response.headers["X-Request-ID"] == "req_fixed"


def test_search_cards(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(rows=[
        stored_card("uuid-a"), stored_card("uuid-b", name="Lightning Helix")
    ]))

    response = client.get("/cards?name=lightning&page=1&limit=1")

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 1
    assert data["items"][0] == {
        "uuid": "uuid-a",
        "name": "Lightning Bolt",
        "set": "M10",
        "imageUrl": "https://img.test/a.jpg",
        "avgRetail": 4.0,
        "avgBuylist": None,
        "weeklyChangePct": None,
        "weeklyChangeBuylistPct": None,
    }
    assert data["pagination"] == {
        "current_page": 1,
        "page_size": 1,
        "has_next": True,
        "has_previous": False,
    }
    assert data["filters_applied"] == {"name": "lightning"}


def test_search_cards_last_page(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(rows=[stored_card()]))

    data = client.get("/cards?page=2&limit=20").json()

    assert data["pagination"]["has_next"] is False
    assert data["pagination"]["has_previous"] is True
    assert data["filters_applied"] == {}


def test_search_cards_rejects_bad_page(client):
    assert client.get("/cards?page=0").status_code == 422


def test_random_card(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(scalar="uuid-a"))

    response = client.get("/cards/random")

    assert response.status_code == 200
    assert response.json() == {"uuid": "uuid-a"}


def test_random_card_empty_store(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(scalar=None))

    assert client.get("/cards/random").status_code == 404


def test_card_detail(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(scalar=stored_card()))

    response = client.get("/cards/uuid-a")

    assert response.status_code == 200
    data = response.json()
    assert data["uuid"] == "uuid-a"
    assert data["language"] == "English"
    assert data["imageUrl"] == "https://img.test/a.jpg"
    assert data["finishes"] == ["normal"]
    assert data["prices"]["retail"]["normal"] == {"low": 3.0, "avg": 4.0, "high": 5.0}
    assert data["vendors"][0]["purchaseUrl"] == "https://example.com/tcg/a"
    assert [point["date"] for point in data["history"]] == ["2024-01-02", "2024-01-03"]
    assert data["history"][1]["retail"] == {"normal": 4.0}


def test_card_detail_not_found(client, db_session):
    db_session.execute = AsyncMock(return_value=result_with(scalar=None))

    response = client.get("/cards/unknown")

    assert response.status_code == 404
    assert response.json()["detail"] == "Card not found"


def test_health_with_partial_sync(client, db_session):
    last_run = SimpleNamespace(
        run_id=uuid.uuid4(),
        status=SyncStatus.PARTIAL,
        started_at=datetime(2024, 1, 3, 4, 0),
        completed_at=datetime(2024, 1, 3, 4, 20),
        duration_seconds=1200.0,
        records_loaded=99_000,
        records_failed=3,
        error_message=None,
    )
    db_session.execute = AsyncMock(side_effect=[
        result_with(scalar=1),
        result_with(scalar=last_run),
        result_with(scalar=99_003),
    ])

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["database_connected"] is True
    assert data["status"] == "degraded"
    assert data["total_cards"] == 99_003
    assert data["last_sync"]["status"] == "partial"
    assert data["last_sync"]["records_failed"] == 3


def test_health_without_runs(client, db_session):
    db_session.execute = AsyncMock(side_effect=[
        result_with(scalar=1),
        result_with(scalar=None),
        result_with(scalar=0),
    ])

    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["last_sync"] is None


def test_health_database_down(client, db_session):
    db_session.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))

    data = client.get("/health").json()

    assert data["database_connected"] is False
    assert data["status"] == "unhealthy"
