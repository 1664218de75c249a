# ============================================================================
# File: ingestion/runner.py
# Description: Sync orchestrator with run tracking and notifications
# ============================================================================
"""
Sync Runner - Orchestrates the card price pipeline.

Stages run strictly in order, each reading the files the previous one wrote:

    download -> filter -> extract -> sort -> merge -> load -> images -> cleanup

A full run:
- Fails fast when the database is unreachable
- Records a ``SyncRun`` row with per-stage counters
- Marks the run PARTIAL when some records could not be loaded
- Marks the run FAILED and re-raises on any fatal stage error
- Sends a notification either way
"""

import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from core.config import Settings, settings as default_settings
from core.database import async_session_maker, check_connection, engine as default_engine
from core.exceptions import ETLException
from ingestion.cleanup import clean_work_directory
from ingestion.enrichment.image_sync import ImageEnricher, ScryfallImageClient
from ingestion.extractors.card_filter import CardFilter
from ingestion.extractors.downloader import FeedDownloader
from ingestion.extractors.price_extractor import PriceExtractor
from ingestion.loaders.card_store import CardStore, PostgresCardStore
from ingestion.loaders.upsert_engine import HistoricalUpsertEngine
from ingestion.notify import SyncNotifier
from ingestion.transformers.merge_join import MergeJoiner
from ingestion.transformers.sorter import NdjsonSorter
from models.base import SyncStatus
from models.sync_run import SyncRun

STAGES = ("download", "filter", "extract", "sort", "merge", "load", "images", "cleanup")
DATABASE_STAGES = {"load", "images"}


@dataclass
class WorkPaths:
    """Locations of every intermediate artifact inside the work directory."""
    root: Path

    @property
    def cards_feed(self) -> Path:
        return self.root / "AllIdentifiers.json"

    @property
    def prices_feed(self) -> Path:
        return self.root / "AllPrices.json"

    @property
    def parsed_cards(self) -> Path:
        return self.root / "parsedCards.ndjson"

    @property
    def parsed_prices(self) -> Path:
        return self.root / "parsedPrices.ndjson"

    @property
    def sorted_cards(self) -> Path:
        return self.root / "cardsSorted.ndjson"

    @property
    def sorted_prices(self) -> Path:
        return self.root / "pricesSorted.ndjson"

    @property
    def merged_cards(self) -> Path:
        return self.root / "mergedCards.ndjson"


class SyncRunner:
    """
    Sync orchestrator.

    Collaborators are injectable so a run can be pointed at other feeds,
    another database or test doubles.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        db_engine: Optional[AsyncEngine] = None,
        store_factory: Callable[[AsyncSession], CardStore] = PostgresCardStore,
        downloader: Optional[FeedDownloader] = None,
        notifier: Optional[SyncNotifier] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config or default_settings
        self.logger = logger or logging.getLogger(__name__)
        self.session_factory = session_factory
        self.db_engine = db_engine or default_engine
        self.store_factory = store_factory
        self.downloader = downloader or FeedDownloader(
            max_retries=self.config.MAX_RETRIES,
            retry_delay=self.config.RETRY_DELAY,
            timeout=self.config.HTTP_TIMEOUT,
            logger=self.logger
        )
        self.notifier = notifier or SyncNotifier(self.config, logger=self.logger)
        self.paths = WorkPaths(Path(self.config.WORK_DIR))
        self.stats: Dict[str, Dict[str, Any]] = {}

    # --------------------------------------------------
    # STAGES
    # --------------------------------------------------

    async def download(self) -> None:
        self.paths.root.mkdir(parents=True, exist_ok=True)
        await self.downloader.download(self.config.CARDS_FEED_URL, self.paths.cards_feed)
        await self.downloader.download(self.config.PRICES_FEED_URL, self.paths.prices_feed)
        self.stats["download"] = {"files": 2}

    async def filter(self) -> None:
        result = await CardFilter(
            self.paths.cards_feed,
            self.paths.parsed_cards,
            canonical_language=self.config.CANONICAL_LANGUAGE,
            logger=self.logger
        ).run()
        self.stats["filter"] = asdict(result)

    async def extract(self) -> None:
        result = await PriceExtractor(
            self.paths.parsed_cards,
            self.paths.prices_feed,
            self.paths.parsed_prices,
            vendors=self.config.PRICE_VENDORS,
            logger=self.logger
        ).run()
        self.stats["extract"] = asdict(result)

    async def sort(self) -> None:
        sorter = NdjsonSorter(
            memory_limit_bytes=self.config.SORT_MEMORY_LIMIT_BYTES,
            chunk_records=self.config.SORT_CHUNK_RECORDS,
            logger=self.logger
        )
        cards = await sorter.sort(self.paths.parsed_cards, self.paths.sorted_cards)
        prices = await sorter.sort(self.paths.parsed_prices, self.paths.sorted_prices)
        self.stats["sort"] = {"cards": asdict(cards), "prices": asdict(prices)}

    async def merge(self) -> None:
        result = await MergeJoiner(logger=self.logger).join(
            self.paths.sorted_cards,
            self.paths.sorted_prices,
            self.paths.merged_cards
        )
        self.stats["merge"] = asdict(result)

    async def load(self) -> None:
        async with self.session_factory() as session:
            engine = HistoricalUpsertEngine(
                self.store_factory(session),
                batch_size=self.config.ETL_BATCH_SIZE,
                progress_interval=self.config.PROGRESS_INTERVAL,
                placeholder_image=self.config.IMAGE_PLACEHOLDER,
                logger=self.logger
            )
            result = await engine.load(self.paths.merged_cards)

        stats = asdict(result)
        # Keep the run row small; the full list is in the log.
        stats["failed_ids"] = stats["failed_ids"][:100]
        self.stats["load"] = stats

    async def images(self) -> None:
        client = ScryfallImageClient(
            base_url=self.config.IMAGE_API_URL,
            max_retries=self.config.IMAGE_MAX_RETRIES,
            backoff=self.config.IMAGE_RETRY_BACKOFF,
            logger=self.logger
        )
        async with client, self.session_factory() as session:
            result = await ImageEnricher(
                session,
                client,
                batch_size=self.config.IMAGE_BATCH_SIZE,
                request_delay=self.config.IMAGE_REQUEST_DELAY,
                placeholder_image=self.config.IMAGE_PLACEHOLDER,
                logger=self.logger
            ).run()
        self.stats["images"] = asdict(result)

    async def cleanup(self) -> None:
        removed = clean_work_directory(
            self.paths.root, sentinel=self.config.SENTINEL_FILE, log=self.logger
        )
        self.stats["cleanup"] = {"removed": removed}

    # --------------------------------------------------
    # ORCHESTRATION
    # --------------------------------------------------

    def plan(
        self,
        stage: str = "all",
        skip_download: bool = False,
        skip_images: bool = False,
        keep_files: bool = False
    ) -> Sequence[str]:
        """Ordered stage names for a run."""
        if stage != "all":
            if stage not in STAGES:
                raise ValueError(f"Unknown stage '{stage}', expected one of: all, {', '.join(STAGES)}")
            return (stage,)

        skipped = set()
        if skip_download:
            skipped.add("download")
        if skip_images:
            skipped.add("images")
        if keep_files:
            skipped.add("cleanup")
        return tuple(name for name in STAGES if name not in skipped)

    async def run_stages(self, stages: Sequence[str]) -> None:
        for name in stages:
            self.logger.info(f"=== Stage: {name} ===")
            started = time.monotonic()
            await getattr(self, name)()
            self.logger.info(f"Stage {name} finished in {time.monotonic() - started:.1f}s")

    async def run(
        self,
        stage: str = "all",
        skip_download: bool = False,
        skip_images: bool = False,
        keep_files: bool = False
    ) -> Dict[str, Any]:
        """
        Run the pipeline, or a single stage when ``stage`` names one.

        Returns:
            Dictionary with ``status``, ``records_loaded``, ``records_failed``
            and ``stages`` (per-stage counters)

        Raises:
            DatabaseConnectionError: If a database stage is planned and the
                database is unreachable
            ETLException: Any fatal stage error, after the run is recorded
        """
        stages = self.plan(stage, skip_download, skip_images, keep_files)
        self.stats = {}

        if DATABASE_STAGES.intersection(stages):
            await check_connection(self.db_engine)

        if stage != "all":
            await self.run_stages(stages)
            return {"status": SyncStatus.SUCCESS.value, "stages": self.stats}

        self.logger.info("Starting card price sync")
        started = time.monotonic()
        sync_run = await self.start_run()

        try:
            await self.run_stages(stages)

        except Exception as e:
            error_context = e.to_dict() if isinstance(e, ETLException) else {
                "error_type": type(e).__name__, "message": str(e)
            }
            self.logger.error(
                f"Sync failed: {e}",
                extra={"error_context": error_context}
            )
            await self.finish_run(sync_run, SyncStatus.FAILED, started, error=e, error_details=error_context)
            await self.notifier.notify(
                "Card price sync failed",
                f"The sync failed after {time.monotonic() - started:.1f}s.\n\n{e}"
            )
            raise

        load = self.stats.get("load", {})
        status = SyncStatus.PARTIAL if load.get("failed") else SyncStatus.SUCCESS
        await self.finish_run(sync_run, status, started)

        summary = {
            "status": status.value,
            "records_loaded": load.get("upserted", 0),
            "records_failed": load.get("failed", 0),
            "stages": self.stats
        }

        self.logger.info(
            f"Sync completed: {status.value} - Loaded: {summary['records_loaded']}, "
            f"Failed: {summary['records_failed']}"
        )
        await self.notifier.notify(
            f"Card price sync {status.value}",
            f"Sync finished in {time.monotonic() - started:.1f}s.\n"
            f"Cards loaded: {summary['records_loaded']}\n"
            f"Cards failed: {summary['records_failed']}"
        )
        return summary

    # --------------------------------------------------
    # RUN TRACKING
    # --------------------------------------------------

    async def start_run(self) -> SyncRun:
        sync_run = SyncRun(status=SyncStatus.RUNNING, started_at=datetime.utcnow())
        async with self.session_factory() as session:
            session.add(sync_run)
            await session.commit()
        return sync_run

    async def finish_run(
        self,
        sync_run: SyncRun,
        status: SyncStatus,
        started: float,
        error: Optional[Exception] = None,
        error_details: Optional[Dict[str, Any]] = None
    ) -> None:
        load = self.stats.get("load", {})
        sync_run.status = status
        sync_run.completed_at = datetime.utcnow()
        sync_run.duration_seconds = round(time.monotonic() - started, 3)
        sync_run.records_loaded = load.get("upserted", 0)
        sync_run.records_failed = load.get("failed", 0)
        sync_run.stage_stats = self.stats
        if error is not None:
            sync_run.error_message = str(error)
            sync_run.error_details = error_details

        try:
            async with self.session_factory() as session:
                await session.merge(sync_run)
                await session.commit()
        except Exception as e:
            # The sync outcome stands even if its bookkeeping cannot be saved.
            self.logger.error(f"Failed to record sync run: {e}")
