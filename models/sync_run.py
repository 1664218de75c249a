from sqlalchemy import Column, BigInteger, Enum, DateTime, Float, Integer, Text, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from datetime import datetime
import uuid
from models.base import Base, SyncStatus


class SyncRun(Base):
    """
    Tracks metadata for each pipeline execution.

    Purpose:
    - Audit trail of all sync runs
    - Per-stage counters (filter, extract, sort, merge, load, images)
    - Error tracking for the health endpoint
    """
    __tablename__ = "sync_runs"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    run_id = Column(UUID(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False, index=True)

    status = Column(Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_loaded = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    stage_stats = Column(JSONB, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONB, nullable=True)

    __table_args__ = (
        Index("idx_sync_run_status", "status", "started_at"),
    )
