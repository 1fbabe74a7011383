"""Bitbucket integration package.

Provides dialect detection for Bitbucket Cloud and Data Center, per-dialect
request path construction, and an async API client with retries and
normalized pagination.
"""

from .client import (
    ALL_ITEMS_CAP,
    MAX_PAGE_LEN,
    BitbucketClient,
    BitbucketClientError,
    ClientConfig,
    ErrorKind,
    Page,
    PageRequest,
    PageResult,
    classify_status,
    compute_backoff,
)
from .dialect import (
    CLOUD_API_URL,
    Dialect,
    detect_dialect,
    extract_workspace_from_url,
    normalize_base_url,
)
from .paths import PathBuilder

__all__ = [
    "ALL_ITEMS_CAP",
    "BitbucketClient",
    "BitbucketClientError",
    "CLOUD_API_URL",
    "ClientConfig",
    "Dialect",
    "ErrorKind",
    "MAX_PAGE_LEN",
    "Page",
    "PageRequest",
    "PageResult",
    "PathBuilder",
    "classify_status",
    "compute_backoff",
    "detect_dialect",
    "extract_workspace_from_url",
    "normalize_base_url",
]
