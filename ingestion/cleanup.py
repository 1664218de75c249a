"""
Work directory cleanup after a sync.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from ingestion.ndjson import PathLike

logger = logging.getLogger(__name__)


def clean_work_directory(
    work_dir: PathLike,
    sentinel: str = ".gitkeep",
    log: Optional[logging.Logger] = None
) -> int:
    """
    Remove every file and subdirectory in ``work_dir`` except ``sentinel``.

    The sentinel is created when missing so the directory survives in
    version control. Returns the number of removed entries.
    """
    log = log or logger
    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)

    removed = 0
    for entry in work_dir.iterdir():
        if entry.name == sentinel:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
        log.debug(f"Deleted {entry}")

    (work_dir / sentinel).touch(exist_ok=True)

    log.info(f"Cleaned {work_dir}: {removed} entries removed")
    return removed
