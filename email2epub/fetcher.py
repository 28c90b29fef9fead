"""
Remote image fetcher
====================

Downloads a batch of distinct URLs into the images cache with a bounded
worker pool. Each URL maps to a deterministic file name (md5 of the URL plus
the URL path's extension), so a later run finds earlier downloads and only
re-checks them with a HEAD request.

The returned mapping is only built after every worker has finished; callers
never observe a partially populated batch.
"""

from __future__ import annotations

import hashlib
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

import httpx

from email2epub.errors import DownloadError
from email2epub.logger import get_logger
from email2epub.models import DownloadResult

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024
PART_SUFFIX = ".part"


class Fetcher:
    """
    Bounded-concurrency downloader.

    Args:
        dest_dir: directory receiving the downloaded files
        concurrency: maximum parallel downloads
        timeout: seconds allowed per URL, HEAD check and GET together
        client: optional preconfigured ``httpx.Client`` (tests pass one with
            a ``MockTransport``); otherwise one is created and owned here
        user_agent: ``User-Agent`` header for the owned client
        verbose: log every download with its size
    """

    def __init__(
        self,
        dest_dir: str,
        concurrency: int = 3,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
        user_agent: Optional[str] = None,
        verbose: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.dest_dir = dest_dir
        self.concurrency = concurrency
        self.timeout = timeout
        self.verbose = verbose
        self._owns_client = client is None
        headers = {"User-Agent": user_agent} if user_agent else None
        self._client = client or httpx.Client(follow_redirects=True, headers=headers)
        self._cancelled = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def cancel(self) -> None:
        """Stop in-flight downloads at their next chunk and skip queued ones."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def local_path_for(self, url: str) -> str:
        """Deterministic cache path for *url*. Raises ``ValueError`` on bad URLs."""
        ext = os.path.splitext(urlparse(url).path)[1]
        return os.path.join(self.dest_dir, hashlib.md5(url.encode("utf-8")).hexdigest() + ext)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def fetch(self, urls: Iterable[str]) -> Dict[str, DownloadResult]:
        """
        Download every distinct URL in *urls* once.

        Returns ``{url: DownloadResult}``; failures are recorded in the
        result, never raised. ``KeyboardInterrupt`` cancels the batch and
        propagates.
        """
        results: Dict[str, DownloadResult] = {}
        jobs: Dict[str, str] = {}
        for url in urls:
            if url in jobs or url in results:
                continue
            try:
                jobs[url] = self.local_path_for(url)
            except ValueError as e:
                logger.warning("Parse %s fail: %s", url, e)
                results[url] = DownloadResult(url=url, path="", error=f"invalid url: {e}")

        if not jobs:
            return results

        os.makedirs(self.dest_dir, exist_ok=True)

        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="fetch")
        futures: Dict[Future, str] = {}
        try:
            for url, path in jobs.items():
                futures[executor.submit(self._run_one, url, path)] = url
            wait(list(futures))
        except KeyboardInterrupt:
            logger.warning("Interrupted, cancelling %d downloads", len(futures))
            self.cancel()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        for future, url in futures.items():
            results[url] = future.result()

        failed = [r for r in results.values() if not r.ok]
        logger.debug("Fetch batch done: %d urls, %d failed", len(results), len(failed))
        return results

    # ------------------------------------------------------------------
    # Single download
    # ------------------------------------------------------------------

    def _run_one(self, url: str, path: str) -> DownloadResult:
        if self.verbose:
            logger.info("Fetch %s", url)
        try:
            skipped = self.download(url, path)
        except (DownloadError, httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning("Download %s fail: %s", url, e)
            return DownloadResult(url=url, path=path, error=str(e) or type(e).__name__)
        return DownloadResult(url=url, path=path, skipped=skipped)

    def _remaining(self, deadline: float) -> float:
        if self._cancelled.is_set():
            raise DownloadError("cancelled")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise DownloadError(f"timed out after {self.timeout:g}s")
        return remaining

    @staticmethod
    def _content_length(response: httpx.Response) -> Optional[int]:
        value = response.headers.get("Content-Length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def is_fresh(self, url: str, path: str, deadline: float) -> bool:
        """
        Whether the cached file at *path* can be reused.

        Compares the remote ``Content-Length`` from a HEAD request with the
        local size. A resource that changed but kept its size is not detected.
        """
        if not os.path.isfile(path):
            return False
        try:
            response = self._client.head(url, timeout=self._remaining(deadline), follow_redirects=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("HEAD %s fail: %s", url, e)
            return False
        declared = self._content_length(response)
        return response.is_success and declared is not None and declared == os.path.getsize(path)

    def download(self, url: str, path: str) -> bool:
        """
        Download *url* to *path*; return True when the cached copy was kept.

        Raises:
            DownloadError: bad status, short body, timeout or cancellation
            httpx.HTTPError: transport failures
            httpx.InvalidURL: a URL httpx refuses to send, such as one with a newline
        """
        deadline = time.monotonic() + self.timeout

        if self.is_fresh(url, path, deadline):
            logger.debug("Skip %s, cached at %s", url, path)
            return True

        part_path = path + PART_SUFFIX
        try:
            with self._client.stream("GET", url, timeout=self._remaining(deadline)) as response:
                if not response.is_success:
                    raise DownloadError(f"response status code {response.status_code} invalid")

                declared = self._content_length(response)
                written = 0
                with open(part_path, "wb") as f:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        self._remaining(deadline)
                        f.write(chunk)
                        written += len(chunk)

                # num_bytes_downloaded stays 0 for bodies httpx already holds in memory
                received = max(written, response.num_bytes_downloaded)
                if declared is not None and received < declared:
                    raise DownloadError(f"expected {declared} bytes but downloaded {received}")

            os.replace(part_path, path)
        except BaseException:
            if os.path.exists(part_path):
                os.remove(part_path)
            raise

        if self.verbose:
            logger.info("Saved %s (%d bytes)", url, os.path.getsize(path))
        return False

