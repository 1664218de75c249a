"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SyncStatus)
    card: Stored cards with their accumulated price history (JSONB)
    sync_run: Pipeline execution tracking and per-stage counters

Usage:
    from models.card import CardItem
    from models.sync_run import SyncRun
    from models.base import SyncStatus

Example:
    result = await session.execute(
        select(CardItem.prices).where(CardItem.uuid == uuid)
    )
    history = result.scalar_one_or_none()
"""

__all__ = [
    "Base",
    "SyncStatus",
    "CardItem",
    "SyncRun",
]
