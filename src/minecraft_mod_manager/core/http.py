"""Shared HTTP plumbing for catalog clients and downloads.

Every outbound request goes through one ``RateLimitedSession``: a
token-bucket ``RateLimiter`` shared by all threads and a fixed-interval
retry on server errors (5xx).  Client errors (4xx) and transport errors
are never retried.  Waits observe the ``CancelToken`` so cancelling a run
stops throttled or retrying requests promptly.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from minecraft_mod_manager import __version__
from minecraft_mod_manager.core.async_utils import CancelToken
from minecraft_mod_manager.errors import (
    DownloadError,
    OperationCancelledError,
)
from minecraft_mod_manager.file_handler import remove_if_exists

logger = logging.getLogger(__name__)

DEFAULT_METADATA_TIMEOUT = 15.0
DEFAULT_DOWNLOAD_TIMEOUT = 300.0
USER_AGENT = f"minecraft-mod-manager/{__version__}"
_DOWNLOAD_CHUNK = 64 * 1024


class RateLimiter:
    """Thread-safe token bucket.

    Args:
        requests_per_second: Sustained rate; ``None`` disables limiting.
        burst: Requests allowed back to back before throttling starts.
    """

    def __init__(
        self, requests_per_second: float | None = None, burst: int = 1
    ) -> None:
        if requests_per_second is not None and requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self._rate = requests_per_second
        self._capacity = float(max(burst, 1))
        self._tokens = self._capacity
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    def _reserve(self) -> float:
        """Take a token and return how long the caller must wait for it."""
        with self._lock:
            now = time.monotonic()
            self._tokens = min(
                self._capacity,
                self._tokens + (now - self._updated) * self._rate,
            )
            self._updated = now
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self._rate

    def wait(self, cancel: CancelToken) -> None:
        """Block until a request may be sent.

        Raises:
            OperationCancelledError: If *cancel* fires while waiting.
        """
        cancel.raise_if_cancelled()
        if self._rate is None:
            return
        delay = self._reserve()
        if delay > 0 and cancel.wait(delay):
            raise OperationCancelledError()


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    interval: float = 1.0


class RateLimitedSession:
    """Rate-limited, retrying wrapper over thread-local ``requests`` sessions."""

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        retry: RetryPolicy | None = None,
        metadata_timeout: float = DEFAULT_METADATA_TIMEOUT,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    ) -> None:
        self.limiter = limiter or RateLimiter()
        self.retry = retry or RetryPolicy()
        self.metadata_timeout = metadata_timeout
        self.download_timeout = download_timeout
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["User-Agent"] = USER_AGENT
        return session

    def request(
        self,
        method: str,
        url: str,
        cancel: CancelToken,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request, retrying server errors.

        The final response is returned whatever its status; the caller
        decides how to treat 4xx or an exhausted 5xx.

        Raises:
            OperationCancelledError: The run was cancelled.
            requests.RequestException: Transport failure (not retried).
        """
        kwargs.setdefault("timeout", self.metadata_timeout)
        session = self._get_session()
        attempt = 0
        while True:
            self.limiter.wait(cancel)
            response = session.request(method, url, **kwargs)
            if not (500 <= response.status_code < 600):
                return response
            if attempt >= self.retry.max_retries:
                return response

            attempt += 1
            logger.debug(
                "%s %s returned %d, retry %d/%d",
                method,
                url,
                response.status_code,
                attempt,
                self.retry.max_retries,
            )
            response.close()
            if cancel.wait(self.retry.interval):
                raise OperationCancelledError()

    def get(
        self, url: str, cancel: CancelToken, **kwargs: Any
    ) -> requests.Response:
        return self.request("GET", url, cancel, **kwargs)

    def post(
        self, url: str, cancel: CancelToken, **kwargs: Any
    ) -> requests.Response:
        return self.request("POST", url, cancel, **kwargs)


def download_file(
    url: str,
    destination: Path,
    http: RateLimitedSession,
    cancel: CancelToken,
) -> None:
    """Stream *url* into *destination*.

    A failure part-way through removes the partial file.  Callers stage
    downloads into a temp sibling and only move it into place after the
    content has been verified.

    Raises:
        DownloadError: Non-2xx response or a failed write.
        OperationCancelledError: The run was cancelled mid-download.
    """
    response = http.get(
        url, cancel, stream=True, timeout=http.download_timeout
    )
    with response:
        if not (200 <= response.status_code < 300):
            raise DownloadError(
                url, f"request failed with status {response.status_code}"
            )
        try:
            with open(destination, "wb") as fh:
                for chunk in response.iter_content(_DOWNLOAD_CHUNK):
                    cancel.raise_if_cancelled()
                    fh.write(chunk)
        except (OSError, requests.RequestException) as exc:
            remove_if_exists(destination)
            raise DownloadError(url, str(exc)) from exc
        except OperationCancelledError:
            remove_if_exists(destination)
            raise
    logger.debug("Downloaded %s to %s", url, destination)


class Downloader:
    """``download_file`` bound to a session, as the reconcilers expect."""

    def __init__(self, http: RateLimitedSession) -> None:
        self.http = http

    def __call__(
        self, url: str, destination: Path, cancel: CancelToken
    ) -> None:
        download_file(url, destination, self.http, cancel)
