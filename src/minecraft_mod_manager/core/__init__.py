"""Concurrency and HTTP plumbing shared by the catalogs and reconcilers."""

from .async_utils import CancelToken, fan_out, run_sync
from .http import Downloader, RateLimitedSession

__all__ = [
    "CancelToken",
    "Downloader",
    "RateLimitedSession",
    "fan_out",
    "run_sync",
]
