"""
Newline-delimited JSON helpers shared by the pipeline stages.
"""

from pathlib import Path
from typing import Any, AsyncIterator, Tuple, Union

import aiofiles
import orjson

PathLike = Union[str, Path]


def dumps_line(obj: Any) -> bytes:
    """Serialize one record as an NDJSON line."""
    return orjson.dumps(obj) + b"\n"


async def iter_lines(path: PathLike) -> AsyncIterator[Tuple[int, bytes]]:
    """
    Yield ``(line_number, line)`` for every non-blank line of ``path``.

    Line numbers are 1-based and count blank lines, so they match what an
    editor shows.
    """
    async with aiofiles.open(path, "rb") as f:
        line_number = 0
        async for raw in f:
            line_number += 1
            line = raw.strip()
            if line:
                yield line_number, line
