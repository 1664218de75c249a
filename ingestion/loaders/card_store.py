"""
Card store: the persisted side of the upsert engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from core.exceptions import DatabaseError, UpsertError
from models.card import CardItem
from schemas.prices import PriceHistory
import logging

logger = logging.getLogger(__name__)


@dataclass
class UpsertOperation:
    """
    One keyed upsert.

    ``set_on_insert`` columns are written only when the uuid is new;
    ``set_fields`` columns are written every time.
    """
    uuid: str
    set_on_insert: Dict[str, Any] = field(default_factory=dict)
    set_fields: Dict[str, Any] = field(default_factory=dict)


class CardStore(ABC):
    """Persistence interface consumed by the historical upsert engine."""

    @abstractmethod
    async def find_price_history(self, uuid: str) -> Optional[PriceHistory]:
        """Return only the stored price tree for ``uuid``, or None if the card is new."""
        pass

    @abstractmethod
    async def bulk_upsert(self, operations: List[UpsertOperation]) -> int:
        """Apply every operation keyed by uuid. Returns the number applied."""
        pass


class PostgresCardStore(CardStore):
    """
    Card store on PostgreSQL with idempotent upserts.

    Ensures:
    - One row per uuid no matter how often a sync is repeated
    - Identity columns are never rewritten after insert
    - Each bulk call is its own transaction
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_price_history(self, uuid: str) -> Optional[PriceHistory]:
        try:
            result = await self.db.execute(
                select(CardItem.prices).where(CardItem.uuid == uuid)
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                "Failed to read stored price history",
                context={"operation": "SELECT", "table_name": "cards", "uuid": uuid},
                original_exception=e
            )
        return result.scalar_one_or_none()

    async def bulk_upsert(self, operations: List[UpsertOperation]) -> int:
        """
        Upsert with INSERT ... ON CONFLICT (uuid) DO UPDATE.

        Operations must not repeat a uuid within one call.

        Raises:
            UpsertError: If the statement fails; the transaction is rolled back
        """
        if not operations:
            return 0

        now = datetime.utcnow()
        rows = [
            {
                **op.set_on_insert,
                **op.set_fields,
                "uuid": op.uuid,
                "created_at": now,
                "updated_at": now,
            }
            for op in operations
        ]

        stmt = insert(CardItem).values(rows)

        update_columns = set(operations[0].set_fields) | {"updated_at"}
        stmt = stmt.on_conflict_do_update(
            index_elements=["uuid"],
            set_={column: stmt.excluded[column] for column in update_columns}
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Bulk upsert failed",
                context={
                    "operation": "UPSERT",
                    "table_name": "cards",
                    "batch_size": len(operations),
                    "uuids": [op.uuid for op in operations[:5]]
                },
                original_exception=e
            )

        logger.debug(f"Upserted {len(operations)} cards")
        return len(operations)
