"""Upstream fetch - OCDS page client and transport retries."""

from .client import FetchedPage, UpstreamFetcher, parse_page
from .retries import RetryConfig, retry_async

__all__ = [
    "FetchedPage",
    "UpstreamFetcher",
    "parse_page",
    "RetryConfig",
    "retry_async",
]
