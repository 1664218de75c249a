"""
Pytest configuration and fixtures
"""

from pathlib import Path

import pytest

from tests.helpers import IDENTIFIERS, PRICES, InMemoryCardStore, write_json


@pytest.fixture
def identifiers_feed(tmp_path) -> Path:
    """Identifiers feed: 3 complete English cards, 2 in other languages"""
    return write_json(tmp_path / "AllIdentifiers.json", IDENTIFIERS)


@pytest.fixture
def prices_feed(tmp_path) -> Path:
    return write_json(tmp_path / "AllPrices.json", PRICES)


@pytest.fixture
def card_store() -> InMemoryCardStore:
    return InMemoryCardStore()
