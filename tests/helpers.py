"""
Shared test data and doubles
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from core.exceptions import UpsertError
from ingestion.loaders.card_store import CardStore, UpsertOperation


def write_json(path: Path, payload: Any) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def write_ndjson(path: Path, rows: List[Any]) -> Path:
    lines = [row if isinstance(row, str) else json.dumps(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def read_ndjson(path: Path) -> List[Dict[str, Any]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


IDENTIFIERS = {
    "meta": {"date": "2024-01-03", "version": "5.2.2"},
    "data": {
        "uuid-b": {
            "uuid": "uuid-b",
            "name": "Llanowar Elves",
            "setCode": "M19",
            "language": "English",
            "identifiers": {"scryfallId": "sf-b", "tcgplayerProductId": "1234"},
            "purchaseUrls": {"tcgplayer": "https://example.com/tcg/b"},
            "type": "Creature - Elf Druid",
        },
        "uuid-a": {
            "uuid": "uuid-a",
            "name": "Lightning Bolt",
            "setCode": "M10",
            "language": "English",
            "scryfallId": "sf-a",
            "purchaseUrls": {
                "tcgplayer": "https://example.com/tcg/a",
                "cardKingdom": "https://example.com/ck/a",
            },
        },
        "uuid-c": {
            "uuid": "uuid-c",
            "name": "Counterspell",
            "setCode": "MH2",
            "language": "English",
        },
        "uuid-d": {
            "uuid": "uuid-d",
            "name": "Lightning Bolt",
            "setCode": "M10",
            "language": "Japanese",
        },
        "uuid-e": {
            "uuid": "uuid-e",
            "name": "Blitzschlag",
            "setCode": "M10",
            "language": "German",
        },
    },
}

PRICES = {
    "meta": {"date": "2024-01-03", "version": "5.2.2"},
    "data": {
        "uuid-a": {
            "mtgo": {"cardhoarder": {"retail": {"normal": {"2024-01-03": 0.02}}}},
            "paper": {
                "tcgplayer": {
                    "currency": "USD",
                    "retail": {"normal": {"2024-01-01": 10, "2024-01-03": 12, "2024-01-02": 11}},
                    "buylist": {"normal": {"2024-01-03": 8.5}},
                },
                "cardkingdom": {
                    "currency": "USD",
                    "retail": {"normal": {"2024-01-03": 13.0}, "foil": {"2024-01-03": 30.0}},
                },
                "cardsphere": {"retail": {"normal": {"2024-01-03": 9.0}}},
            },
        },
        "uuid-b": {
            "paper": {
                "cardmarket": {
                    "currency": "EUR",
                    "retail": {"normal": {"2024-01-02": 0.25, "2024-01-03": 0.3}},
                },
            },
        },
        "uuid-c": {
            "paper": {
                "tcgplayer": {"retail": {"normal": {"2024-01-03": "not a price"}}},
            },
        },
        "uuid-d": {
            "paper": {"tcgplayer": {"retail": {"normal": {"2024-01-03": 1.0}}}},
        },
        "uuid-z": {
            "paper": {"tcgplayer": {"retail": {"normal": {"2024-01-03": 5.0}}}},
        },
    },
}


class InMemoryCardStore(CardStore):
    """
    Card store double keeping documents in a dict.

    Mirrors the upsert semantics of the Postgres store: ``set_on_insert``
    only for new uuids, ``set_fields`` always. Uuids in ``fail_uuids`` make
    any bulk call containing them fail.
    """

    def __init__(self, fail_uuids: Optional[Set[str]] = None):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.fail_uuids = set(fail_uuids or ())
        self.bulk_calls: List[List[str]] = []
        self.lookups = 0

    async def find_price_history(self, uuid: str):
        self.lookups += 1
        document = self.documents.get(uuid)
        return copy.deepcopy(document["prices"]) if document else None

    async def bulk_upsert(self, operations: List[UpsertOperation]) -> int:
        uuids = [op.uuid for op in operations]
        self.bulk_calls.append(uuids)

        if self.fail_uuids.intersection(uuids):
            raise UpsertError("Bulk upsert failed", context={"uuids": uuids})

        for op in operations:
            document = self.documents.get(op.uuid)
            if document is None:
                document = {"uuid": op.uuid, **copy.deepcopy(op.set_on_insert)}
                self.documents[op.uuid] = document
            document.update(copy.deepcopy(op.set_fields))
        return len(operations)
