"""
Feed downloader with retry logic.

Streams a remote JSON feed straight to disk so multi-gigabyte files never
sit in memory:
- Exponential backoff retry for timeouts, network errors, 5xx and 429
- Immediate failure for other non-2xx responses
- Partial files are deleted on any failure
"""

import httpx
import asyncio
import aiofiles
from pathlib import Path
from typing import Optional
from core.config import settings
from core.exceptions import DownloadError, NetworkError
from ingestion.ndjson import PathLike
import logging

CHUNK_SIZE = 1024 * 1024


class FeedDownloader:
    """
    Download feeds over HTTP(S) to local files.

    Attributes:
        max_retries: Maximum number of attempts per feed (default: settings.MAX_RETRIES)
        retry_delay: Initial retry delay in seconds, doubled per attempt
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        max_retries: int = settings.MAX_RETRIES,
        retry_delay: float = settings.RETRY_DELAY,
        timeout: float = settings.HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger(__name__)

    async def download(self, url: str, destination: PathLike) -> Path:
        """
        Download ``url`` to ``destination``.

        Returns:
            The destination path

        Raises:
            DownloadError: For non-retryable HTTP statuses
            NetworkError: When every attempt failed with a transient error
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Downloading {url} to {destination}")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport
        ) as client:
            for attempt in range(self.max_retries):
                try:
                    size = await self._fetch(client, url, destination)
                    self.logger.info(
                        f"Downloaded {destination.name} ({size / (1024 ** 2):.1f} MB)"
                    )
                    return destination

                except DownloadError:
                    destination.unlink(missing_ok=True)
                    raise

                except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError,
                        _TransientStatus) as e:
                    destination.unlink(missing_ok=True)

                    if attempt < self.max_retries - 1:
                        delay = self.retry_delay * (2 ** attempt)
                        self.logger.warning(
                            f"Download of {url} failed ({e}). Retrying in {delay} seconds "
                            f"(attempt {attempt + 1}/{self.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    raise NetworkError(
                        f"Download failed after {self.max_retries} attempts",
                        context={
                            "url": url,
                            "destination": str(destination),
                            "retry_count": attempt + 1
                        },
                        original_exception=e,
                        max_retries=self.max_retries,
                        retry_delay=self.retry_delay
                    )

                except OSError as e:
                    destination.unlink(missing_ok=True)
                    raise DownloadError(
                        "Failed to write downloaded feed",
                        context={"url": url, "destination": str(destination)},
                        original_exception=e
                    )

        # Unreachable: every loop iteration returns or raises
        raise DownloadError("Download failed", context={"url": url})

    async def _fetch(self, client: httpx.AsyncClient, url: str, destination: Path) -> int:
        async with client.stream("GET", url) as response:
            if response.status_code == 429 or response.status_code >= 500:
                raise _TransientStatus(response.status_code)

            if not response.is_success:
                raise DownloadError(
                    f"Failed to get '{url}' ({response.status_code})",
                    context={
                        "url": url,
                        "status_code": response.status_code,
                        "destination": str(destination)
                    }
                )

            written = 0
            async with aiofiles.open(destination, "wb") as sink:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    await sink.write(chunk)
                    written += len(chunk)
            return written


class _TransientStatus(Exception):
    """HTTP status worth retrying (429, 5xx)."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
