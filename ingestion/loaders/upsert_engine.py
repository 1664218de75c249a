"""
Historical upsert engine.

Reads merged records one at a time, folds each price snapshot into the
card's stored history and writes the result back in keyed batches.

Failure policy is skip-and-continue: a record whose lookup, merge or upsert
fails is logged with its uuid and counted as failed; the rest of the file
is still loaded. A failed batch is retried one operation at a time so a
single bad record cannot take its whole batch down with it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.exceptions import LoadError
from ingestion.loaders.card_store import CardStore, UpsertOperation
from ingestion.loaders.history import merge_price_history
from ingestion.ndjson import PathLike, iter_lines
from schemas.records import MergedRecord


@dataclass
class LoadResult:
    processed: int = 0
    upserted: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)


class HistoricalUpsertEngine:
    """
    Load merged records into a ``CardStore`` with accumulating price history.

    A uuid seen twice within one batch is merged into the pending operation
    instead of being looked up again, so no update is lost to a stale read.
    """

    def __init__(
        self,
        store: CardStore,
        batch_size: int = 500,
        progress_interval: int = 5000,
        placeholder_image: str = settings.IMAGE_PLACEHOLDER,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.placeholder_image = placeholder_image
        self.logger = logger or logging.getLogger(__name__)

    async def load(self, merged_path: PathLike) -> LoadResult:
        """Load every merged record in ``merged_path``."""
        merged_path = Path(merged_path)
        self.logger.info(f"Loading merged cards from {merged_path}")

        result = LoadResult()
        pending: Dict[str, UpsertOperation] = {}

        async for line_number, line in iter_lines(merged_path):
            result.processed += 1

            try:
                record = MergedRecord.model_validate_json(line)
            except PydanticValidationError as e:
                self.record_failure(result, f"line {line_number}", e)
                continue

            try:
                await self.stage(record, pending)
            except Exception as e:
                self.record_failure(result, record.uuid, e)
                continue

            if len(pending) >= self.batch_size:
                await self.flush(pending, result)

            if result.processed % self.progress_interval == 0:
                self.logger.info(f"Processed {result.processed} cards so far...")

        await self.flush(pending, result)

        self.logger.info(
            f"Load complete: {result.processed} processed, {result.upserted} "
            f"inserted or updated, {result.failed} failed"
        )
        return result

    async def stage(self, record: MergedRecord, pending: Dict[str, UpsertOperation]) -> None:
        """Merge ``record`` into its stored history and queue the upsert."""
        queued = pending.get(record.uuid)
        if queued is not None:
            existing = queued.set_fields["prices"]
        else:
            existing = await self.store.find_price_history(record.uuid)

        merged = merge_price_history(existing, record.prices)

        if queued is not None:
            queued.set_fields["prices"] = merged
            return

        identity = record.identity_fields()
        identity.pop("uuid")
        identity["image_url"] = self.placeholder_image

        pending[record.uuid] = UpsertOperation(
            uuid=record.uuid,
            set_on_insert=identity,
            set_fields={"prices": merged}
        )

    async def flush(self, pending: Dict[str, UpsertOperation], result: LoadResult) -> None:
        if not pending:
            return

        operations = list(pending.values())
        pending.clear()

        try:
            result.upserted += await self.store.bulk_upsert(operations)
            return
        except LoadError as e:
            self.logger.warning(
                f"Batch of {len(operations)} failed, retrying one at a time: {e.message}"
            )

        for operation in operations:
            try:
                result.upserted += await self.store.bulk_upsert([operation])
            except LoadError as e:
                self.record_failure(result, operation.uuid, e)

    def record_failure(self, result: LoadResult, uuid: str, error: Exception) -> None:
        result.failed += 1
        result.failed_ids.append(uuid)
        self.logger.error(
            f"Failed to load card {uuid}: {error}",
            extra={"error_context": {"uuid": uuid, "error_type": type(error).__name__}}
        )
