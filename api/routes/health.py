"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, SyncRunInfo
from models.card import CardItem
from models.sync_run import SyncRun
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Summary of the most recent sync run
    - Number of stored cards
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    last_sync = None
    total_cards = 0

    if db_connected:
        try:
            result = await db.execute(
                select(SyncRun).order_by(SyncRun.started_at.desc()).limit(1)
            )
            run = result.scalar_one_or_none()
            if run is not None:
                last_sync = SyncRunInfo(
                    run_id=str(run.run_id),
                    status=run.status,
                    started_at=run.started_at,
                    completed_at=run.completed_at,
                    duration_seconds=run.duration_seconds,
                    records_loaded=run.records_loaded or 0,
                    records_failed=run.records_failed or 0,
                    error_message=run.error_message
                )

            count_result = await db.execute(select(func.count()).select_from(CardItem))
            total_cards = count_result.scalar() or 0
        except Exception as e:
            logger.error(f"Failed to fetch sync status: {str(e)}")

    # Status is derived by the HealthCheckResponse validator
    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        last_sync=last_sync,
        total_cards=total_cards
    )
