"""
NDJSON sorter - orders records by ``uuid`` ahead of the merge-join.

Two strategies sit behind one interface:

* ``InMemorySortStrategy`` loads every (key, line) pair and sorts once.
* ``ExternalMergeSortStrategy`` sorts fixed-size chunks into temporary
  files and k-way merges them with a heap, so memory is bounded by the
  chunk size rather than the input size.

``NdjsonSorter`` probes the input size and picks the in-memory strategy only
while the file fits under the configured ceiling.

Lines that are not JSON objects with a string ``uuid`` are counted, logged
and dropped. Records with equal keys are all kept.
"""

import heapq
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from operator import itemgetter
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

import aiofiles
import orjson

from core.exceptions import SortError
from ingestion.ndjson import PathLike, iter_lines

SORT_KEY = "uuid"

# Python objects for one (key, line) tuple take about this many times the
# raw line size (str and bytes headers plus the tuple and list slot).
RESIDENT_SIZE_FACTOR = 4


@dataclass
class SortResult:
    sorted: int = 0
    skipped: int = 0
    strategy: str = ""


def extract_key(line: bytes) -> Optional[str]:
    """Return the record's uuid, or None when the line is not a usable record."""
    try:
        obj = orjson.loads(line)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    key = obj.get(SORT_KEY)
    return key if isinstance(key, str) else None


class SortStrategy(ABC):
    """Sorts an NDJSON file by uuid into another file."""

    name = "base"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def iter_keyed(
        self,
        input_path: PathLike,
        result: SortResult
    ) -> AsyncIterator[Tuple[str, bytes]]:
        """Yield (key, line) for valid lines, counting the rest as skipped."""
        async for line_number, line in iter_lines(input_path):
            key = extract_key(line)
            if key is None:
                result.skipped += 1
                self.logger.warning(
                    f"Skipping invalid record at {input_path}:{line_number}: {line[:80]!r}"
                )
                continue
            yield key, line

    @abstractmethod
    async def sort(self, input_path: PathLike, output_path: PathLike) -> SortResult:
        pass


class InMemorySortStrategy(SortStrategy):
    """Sort the whole file in memory. Only safe for bounded inputs."""

    name = "in_memory"

    async def sort(self, input_path: PathLike, output_path: PathLike) -> SortResult:
        result = SortResult(strategy=self.name)

        rows: List[Tuple[str, bytes]] = []
        async for key, line in self.iter_keyed(input_path, result):
            rows.append((key, line))

        rows.sort(key=itemgetter(0))

        async with aiofiles.open(output_path, "wb") as sink:
            for _key, line in rows:
                await sink.write(line + b"\n")

        result.sorted = len(rows)
        return result


class ExternalMergeSortStrategy(SortStrategy):
    """Chunk-and-merge sort with at most ``chunk_records`` records resident."""

    name = "external"

    def __init__(
        self,
        chunk_records: int = 100_000,
        logger: Optional[logging.Logger] = None
    ):
        super().__init__(logger)
        if chunk_records < 1:
            raise ValueError("chunk_records must be at least 1")
        self.chunk_records = chunk_records

    async def sort(self, input_path: PathLike, output_path: PathLike) -> SortResult:
        result = SortResult(strategy=self.name)
        output_path = Path(output_path)
        chunk_dir = Path(tempfile.mkdtemp(prefix="sort-chunks-", dir=output_path.parent))

        try:
            chunk_paths: List[Path] = []
            chunk: List[Tuple[str, bytes]] = []

            async for key, line in self.iter_keyed(input_path, result):
                chunk.append((key, line))
                if len(chunk) >= self.chunk_records:
                    chunk_paths.append(await self.write_chunk(chunk, chunk_dir, len(chunk_paths)))
                    chunk = []

            if chunk:
                chunk_paths.append(await self.write_chunk(chunk, chunk_dir, len(chunk_paths)))

            self.logger.debug(f"Merging {len(chunk_paths)} sorted chunks into {output_path}")
            result.sorted = await self.merge_chunks(chunk_paths, output_path)
        finally:
            shutil.rmtree(chunk_dir, ignore_errors=True)

        return result

    async def write_chunk(
        self,
        chunk: List[Tuple[str, bytes]],
        chunk_dir: Path,
        index: int
    ) -> Path:
        chunk.sort(key=itemgetter(0))
        path = chunk_dir / f"chunk-{index:05d}.ndjson"
        async with aiofiles.open(path, "wb") as sink:
            for _key, line in chunk:
                await sink.write(line + b"\n")
        return path

    async def merge_chunks(self, chunk_paths: List[Path], output_path: Path) -> int:
        """K-way merge of sorted chunk files. Returns the number of lines written."""
        readers = [iter_lines(path) for path in chunk_paths]
        heap: List[Tuple[str, int, bytes]] = []
        written = 0

        async def push_next(index: int) -> None:
            try:
                _line_number, line = await readers[index].__anext__()
            except StopAsyncIteration:
                return
            heapq.heappush(heap, (extract_key(line), index, line))

        try:
            for index in range(len(readers)):
                await push_next(index)

            async with aiofiles.open(output_path, "wb") as sink:
                while heap:
                    _key, index, line = heapq.heappop(heap)
                    await sink.write(line + b"\n")
                    written += 1
                    await push_next(index)
        finally:
            for reader in readers:
                await reader.aclose()

        return written


class NdjsonSorter:
    """
    Sort an NDJSON file by uuid, choosing the strategy from the input size.

    The in-memory strategy holds a ``(key, line)`` tuple per record, which
    takes roughly ``RESIDENT_SIZE_FACTOR`` times the file size. Inputs whose
    estimated resident size fits ``memory_limit_bytes`` are sorted in memory;
    larger inputs use the external merge sort.
    """

    def __init__(
        self,
        memory_limit_bytes: int,
        chunk_records: int = 100_000,
        logger: Optional[logging.Logger] = None
    ):
        self.memory_limit_bytes = memory_limit_bytes
        self.chunk_records = chunk_records
        self.logger = logger or logging.getLogger(__name__)

    def build_strategy(self, name: str) -> SortStrategy:
        if name == InMemorySortStrategy.name:
            return InMemorySortStrategy(logger=self.logger)
        if name == ExternalMergeSortStrategy.name:
            return ExternalMergeSortStrategy(chunk_records=self.chunk_records, logger=self.logger)
        raise ValueError(f"Unknown sort strategy: {name}")

    def estimated_resident_size(self, file_size: int) -> int:
        return file_size * RESIDENT_SIZE_FACTOR

    def choose_strategy(self, input_path: PathLike) -> SortStrategy:
        size = Path(input_path).stat().st_size
        if self.estimated_resident_size(size) <= self.memory_limit_bytes:
            return self.build_strategy(InMemorySortStrategy.name)
        self.logger.info(
            f"{input_path} is {size} bytes (about {self.estimated_resident_size(size)} in memory, "
            f"limit {self.memory_limit_bytes}), using external sort"
        )
        return self.build_strategy(ExternalMergeSortStrategy.name)

    async def sort(
        self,
        input_path: PathLike,
        output_path: PathLike,
        strategy: Optional[str] = None
    ) -> SortResult:
        """
        Sort ``input_path`` into ``output_path``.

        Args:
            strategy: Force ``in_memory`` or ``external``; probe the size when None

        Raises:
            SortError: If either file cannot be read or written
        """
        self.logger.info(f"Starting sort for {input_path}")

        try:
            sorter = self.build_strategy(strategy) if strategy else self.choose_strategy(input_path)
            result = await sorter.sort(input_path, output_path)
        except OSError as e:
            raise SortError(
                "Failed to sort NDJSON file",
                context={
                    "input_path": str(input_path),
                    "output_path": str(output_path),
                    "strategy": strategy
                },
                original_exception=e
            )

        self.logger.info(
            f"Finished sort ({result.strategy}): {result.sorted} items sorted, "
            f"{result.skipped} skipped, output: {output_path}"
        )
        return result
