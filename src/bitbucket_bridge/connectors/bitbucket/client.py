"""Bitbucket REST API client.

Provides an async httpx-based client that speaks both Bitbucket dialects
with Bearer token auth. Implements retry with exponential backoff for
transient failures, dialect-aware pagination normalized into one result
shape, and classification of failures into a small set of error kinds.

Pagination:
- Cloud: `pagelen`/`page` query params, follow the `next` link verbatim
- Data Center: `limit`/`start` query params, follow `nextPageStart`
  until `isLastPage`

Reference: https://developer.atlassian.com/cloud/bitbucket/rest/
Reference: https://developer.atlassian.com/server/bitbucket/rest/
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from ...__version__ import __version__
from ...metrics import (
    bitbucket_pagination_truncations_total,
    bitbucket_request_duration_seconds,
    bitbucket_requests_total,
    bitbucket_retries_total,
)
from .dialect import Dialect, detect_dialect

logger = logging.getLogger("bitbucket_bridge.bitbucket.client")

__all__ = [
    "ALL_ITEMS_CAP",
    "BitbucketClient",
    "BitbucketClientError",
    "ClientConfig",
    "DEFAULT_PAGE_LEN",
    "ErrorKind",
    "MAX_BACKOFF",
    "MAX_PAGE_LEN",
    "Page",
    "PageRequest",
    "PageResult",
    "classify_status",
    "compute_backoff",
    "wait_backoff",
]

# Fetch-all stops after this many items
ALL_ITEMS_CAP = 1000

# Largest page either dialect is asked for
MAX_PAGE_LEN = 100

DEFAULT_PAGE_LEN = {
    Dialect.CLOUD: 10,
    Dialect.DATA_CENTER: 25,
}

# Upper bound for a single backoff sleep (seconds)
MAX_BACKOFF = 30.0

# Error bodies are cut to this many characters in messages
_ERROR_BODY_PREVIEW = 500


# ==============================================================================
# Errors
# ==============================================================================


class ErrorKind(str, Enum):
    """Classification of a failed request."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    REQUEST_FAILED = "request_failed"
    TRANSPORT = "transport"


class BitbucketClientError(Exception):
    """Raised when a Bitbucket API request fails.

    Wraps httpx transport errors and non-2xx responses so callers handle a
    single exception type.

    Attributes:
        kind: ErrorKind classification
        status_code: HTTP status, None for transport failures
        message: Human-readable description (never contains credentials)
        body: Raw response body text, when a response was received
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.body = body

    def __repr__(self) -> str:
        return (
            f"BitbucketClientError(kind={self.kind.value!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying: transport errors and 5xx."""
        if self.kind is ErrorKind.TRANSPORT:
            return True
        return self.status_code is not None and self.status_code >= 500


def classify_status(status_code: int) -> ErrorKind:
    """Map a non-2xx HTTP status to an ErrorKind."""
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status_code == 409:
        return ErrorKind.CONFLICT
    return ErrorKind.REQUEST_FAILED


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BitbucketClientError) and exc.is_transient


# ==============================================================================
# Backoff
# ==============================================================================


def compute_backoff(attempt: int, base_delay: float, max_delay: float = MAX_BACKOFF) -> float:
    """Delay before retry number `attempt` (0-based), in seconds.

    Doubles from `base_delay` and is capped at `max_delay`:
        attempt 0 -> base, 1 -> 2*base, 2 -> 4*base, ...
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Avoid float overflow on absurd attempt counts
    if attempt > 64:
        return max_delay
    return min(max_delay, base_delay * (2**attempt))


class wait_backoff(wait_base):
    """tenacity wait strategy backed by compute_backoff()."""

    def __init__(self, base_delay: float, max_delay: float = MAX_BACKOFF) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is 1-based and counts the attempt that just failed
        return compute_backoff(retry_state.attempt_number - 1, self.base_delay, self.max_delay)


# ==============================================================================
# Configuration & pagination types
# ==============================================================================


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for BitbucketClient.

    Attributes:
        base_url: API root, trailing slashes stripped (http or https)
        token: Bearer token, excluded from repr
        timeout: Per-attempt timeout in seconds
        max_retries: Retries after the first attempt for transient failures
        retry_delay: Base backoff delay in seconds
        verify_tls: Verify server certificates
    """

    base_url: str
    token: str = field(repr=False)
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    verify_tls: bool = True

    def __post_init__(self) -> None:
        base_url = self.base_url.strip().rstrip("/")
        scheme = urlsplit(base_url).scheme.lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"base_url must use http or https, got {base_url!r}")
        object.__setattr__(self, "base_url", base_url)


@dataclass(frozen=True)
class PageRequest:
    """Pagination options for a listing call.

    Attributes:
        pagelen: Items per page (1-100); None uses the dialect default
        page: 1-based page number; None means the first page
        all: Fetch every page up to ALL_ITEMS_CAP. Ignored when `page` is set.
    """

    pagelen: int | None = None
    page: int | None = None
    all: bool = False

    def __post_init__(self) -> None:
        if self.pagelen is not None and not 1 <= self.pagelen <= MAX_PAGE_LEN:
            raise ValueError(f"pagelen must be between 1 and {MAX_PAGE_LEN}, got {self.pagelen}")
        if self.page is not None and self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")

    @property
    def fetch_all(self) -> bool:
        return self.all and self.page is None

    def resolve_pagelen(self, dialect: Dialect) -> int:
        if self.pagelen is not None:
            return self.pagelen
        return min(DEFAULT_PAGE_LEN[Dialect(dialect)], MAX_PAGE_LEN)


@dataclass
class Page:
    """One upstream page, already normalized."""

    items: list[Any]
    has_more: bool
    total: int | None = None


@dataclass
class PageResult:
    """Normalized listing result.

    Attributes:
        items: Collected items, at most ALL_ITEMS_CAP
        has_more: True when upstream holds further items not included
        total: Upstream total when the API reports one
        truncated: True when fetch-all stopped at ALL_ITEMS_CAP
    """

    items: list[Any] = field(default_factory=list)
    has_more: bool = False
    total: int | None = None
    truncated: bool = False


# ==============================================================================
# Client
# ==============================================================================


class BitbucketClient:
    """Bitbucket REST API client using httpx with Bearer token auth.

    Uses a long-lived httpx.AsyncClient with connection pooling. Every
    request is a GET relative to the configured API root; absolute Cloud
    `next` links are followed as-is after checking they stay on that root.

    Transient failures (transport errors, timeouts, 5xx) are retried up to
    `max_retries` times with exponential backoff. 4xx responses, 429
    included, fail immediately.

    Example:
        >>> config = ClientConfig(base_url="https://api.bitbucket.org/2.0", token="...")
        >>> async with BitbucketClient(config) as client:
        ...     repos = await client.fetch_page("/repositories/myworkspace")
        ...     print(len(repos.items), repos.has_more)
    """

    USER_AGENT = f"bitbucket-bridge/{__version__}"

    def __init__(
        self,
        config: ClientConfig,
        dialect: Dialect | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            config: Connection settings
            dialect: Force a dialect; detected from base_url when omitted
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Coroutine used for backoff sleeps
        """
        self.config = config
        self.base_url = config.base_url
        self.dialect = Dialect(dialect) if dialect is not None else detect_dialect(config.base_url)
        self._sleep = sleep

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/json",
                "User-Agent": self.USER_AGENT,
            },
            timeout=httpx.Timeout(config.timeout),
            verify=config.verify_tls,
            # Cloud answers pull request diff/diffstat/patch with a 302
            follow_redirects=True,
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"BitbucketClient(base_url={self.base_url!r}, dialect={self.dialect.value!r})"

    async def __aenter__(self) -> "BitbucketClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit -- close httpx client."""
        await self.close()

    async def close(self) -> None:
        """Close the httpx client and release connections."""
        await self._client.aclose()

    @property
    def is_cloud(self) -> bool:
        return self.dialect is Dialect.CLOUD

    # --- Single resources ---

    async def fetch_one(self, path: str, query: Mapping[str, Any] | None = None) -> Any:
        """GET a single JSON resource.

        Returns:
            Decoded JSON body, or None for an empty 2xx body

        Raises:
            BitbucketClientError: On any non-2xx response, transport failure
                after retries, or a 2xx body that is not valid JSON
        """
        response = await self._send(path, self._encode_query(query))
        return self._decode_json(response, path)

    async def fetch_text(self, path: str, query: Mapping[str, Any] | None = None) -> str:
        """GET a plain-text resource (diffs, patches)."""
        response = await self._send(path, self._encode_query(query))
        return response.text

    # --- Listings ---

    async def fetch_page(
        self,
        path: str,
        page_request: PageRequest | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> PageResult:
        """GET a paginated listing and normalize it.

        Single-page mode issues exactly one request. Fetch-all mode
        (`all=True` without `page`) follows pages until upstream reports no
        more or ALL_ITEMS_CAP items are collected.

        Args:
            path: Listing path
            page_request: Pagination options (defaults to first page)
            query: Extra query parameters (filters, state, sort)

        Returns:
            PageResult with items, has_more, total and truncated
        """
        page_request = page_request or PageRequest()
        result = PageResult()
        first = True

        async with contextlib.aclosing(self.iter_pages(path, page_request, query)) as pages:
            async for page in pages:
                if first:
                    result.total = page.total
                    first = False

                remaining = ALL_ITEMS_CAP - len(result.items)
                result.items.extend(page.items[:remaining])
                result.has_more = page.has_more

                if len(page.items) > remaining or (
                    page_request.fetch_all and page.has_more and len(result.items) >= ALL_ITEMS_CAP
                ):
                    result.has_more = True
                    result.truncated = True
                    bitbucket_pagination_truncations_total.labels(
                        dialect=self.dialect.value
                    ).inc()
                    logger.info(
                        "Fetch-all stopped at %d items for %s",
                        ALL_ITEMS_CAP,
                        path,
                    )
                    break

        # Data Center reports per-page sizes only; a complete fetch-all knows its total
        if (
            self.dialect is Dialect.DATA_CENTER
            and page_request.fetch_all
            and not result.has_more
        ):
            result.total = len(result.items)

        return result

    async def iter_pages(
        self,
        path: str,
        page_request: PageRequest | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[Page]:
        """Yield normalized pages of a listing lazily.

        Single-page mode yields one page. Fetch-all mode keeps requesting
        while upstream reports more; it also stops on an empty page so a
        misbehaving server cannot loop forever. Each call starts over from
        the requested page.
        """
        page_request = page_request or PageRequest()
        pagelen = page_request.resolve_pagelen(self.dialect)
        params: dict[str, Any] = dict(query or {})

        if self.dialect is Dialect.CLOUD:
            params["pagelen"] = pagelen
            if page_request.page is not None:
                params["page"] = page_request.page

            url: str | None = path
            encoded: dict[str, str] | None = self._encode_query(params)
            page_number = 1
            while url is not None:
                body = await self._fetch_listing(url, encoded)
                page = self._parse_cloud_page(body)
                yield page

                if not (page_request.fetch_all and page.has_more and page.items):
                    return
                # The next link embeds every query parameter
                url = self._checked_next_link(body.get("next"))
                encoded = None
                page_number += 1
                logger.debug("Paginating %s: page %d", path, page_number)
        else:
            params["limit"] = pagelen
            if page_request.page is not None:
                params["start"] = (page_request.page - 1) * pagelen

            while True:
                body = await self._fetch_listing(path, self._encode_query(params))
                page = self._parse_data_center_page(body)
                yield page

                if not (page_request.fetch_all and page.has_more and page.items):
                    return
                params["start"] = body["nextPageStart"]
                logger.debug("Paginating %s: start=%s", path, params["start"])

    # --- Internals ---

    async def _fetch_listing(self, url: str, params: dict[str, str] | None) -> dict[str, Any]:
        response = await self._send(url, params)
        body = self._decode_json(response, url)
        if not isinstance(body, dict) or not isinstance(body.get("values"), list):
            raise BitbucketClientError(
                f"Unexpected listing payload from {url}: missing 'values' list",
                ErrorKind.REQUEST_FAILED,
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _parse_cloud_page(body: dict[str, Any]) -> Page:
        total = body.get("size")
        return Page(
            items=list(body["values"]),
            has_more=bool(body.get("next")),
            total=total if isinstance(total, int) else None,
        )

    @staticmethod
    def _parse_data_center_page(body: dict[str, Any]) -> Page:
        # Data Center's `size` counts items on this page, not the collection
        has_more = not body.get("isLastPage", True) and body.get("nextPageStart") is not None
        return Page(items=list(body["values"]), has_more=has_more, total=None)

    def _checked_next_link(self, next_url: Any) -> str | None:
        """Validate a Cloud `next` link before following it.

        Returns the link unchanged, or None (stop paginating) when it is
        missing or points outside the configured API root.
        """
        if not isinstance(next_url, str) or not next_url:
            return None
        # Reject any pagination URL not under our base URL (open redirect / SSRF)
        if not next_url.startswith(self.base_url + "/"):
            logger.warning(
                "Rejecting pagination link not matching base_url: %.100s",
                next_url,
            )
            return None
        return next_url

    @staticmethod
    def _encode_query(query: Mapping[str, Any] | None) -> dict[str, str] | None:
        """Drop None values and render the rest as query strings."""
        if not query:
            return None
        encoded: dict[str, str] = {}
        for key, value in query.items():
            if value is None:
                continue
            if isinstance(value, bool):
                encoded[key] = "true" if value else "false"
            else:
                encoded[key] = str(value)
        return encoded or None

    def _decode_json(self, response: httpx.Response, url: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BitbucketClientError(
                f"Invalid JSON in response from {url}",
                ErrorKind.REQUEST_FAILED,
                status_code=response.status_code,
                body=response.text[:_ERROR_BODY_PREVIEW],
            ) from e

    async def _send(self, url: str, params: dict[str, str] | None) -> httpx.Response:
        """GET with retries for transient failures.

        Makes at most max_retries + 1 attempts. The last failure is re-raised
        unchanged once the budget is spent.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_backoff(self.config.retry_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._attempt(url, params)

    async def _attempt(self, url: str, params: dict[str, str] | None) -> httpx.Response:
        """Issue one GET and turn every failure into BitbucketClientError."""
        dialect = self.dialect.value
        start = time.monotonic()
        try:
            response = await self._client.request("GET", url, params=params)
        except httpx.TimeoutException as e:
            bitbucket_requests_total.labels(dialect=dialect, outcome=ErrorKind.TRANSPORT.value).inc()
            raise BitbucketClientError(
                f"Request timeout: GET {url}: {e}", ErrorKind.TRANSPORT
            ) from e
        except httpx.RequestError as e:
            bitbucket_requests_total.labels(dialect=dialect, outcome=ErrorKind.TRANSPORT.value).inc()
            raise BitbucketClientError(
                f"Connection error: GET {url}: {e}", ErrorKind.TRANSPORT
            ) from e
        finally:
            bitbucket_request_duration_seconds.labels(dialect=dialect).observe(
                time.monotonic() - start
            )

        status = response.status_code
        if 200 <= status < 300:
            bitbucket_requests_total.labels(dialect=dialect, outcome="success").inc()
            logger.debug("GET %s -> %d", url, status)
            return response

        kind = classify_status(status)
        bitbucket_requests_total.labels(dialect=dialect, outcome=kind.value).inc()
        raise BitbucketClientError(
            self._error_message(kind, status, url, response),
            kind,
            status_code=status,
            body=response.text,
        )

    @staticmethod
    def _error_message(kind: ErrorKind, status: int, url: str, response: httpx.Response) -> str:
        if kind is ErrorKind.NOT_FOUND:
            return f"Resource not found: {url}"
        if kind is ErrorKind.UNAUTHORIZED:
            return (
                f"Bitbucket API error {status}: authentication failed or access "
                f"denied for {url}. Check the configured token."
            )

        detail = ""
        try:
            error_body = response.json() if response.content else {}
        except ValueError:
            error_body = {}
        if isinstance(error_body, dict):
            # Cloud: {"error": {"message": ...}}; Data Center: {"errors": [{"message": ...}]}
            cloud_error = error_body.get("error")
            dc_errors = error_body.get("errors")
            if isinstance(cloud_error, dict) and cloud_error.get("message"):
                detail = str(cloud_error["message"])
            elif isinstance(dc_errors, list) and dc_errors and isinstance(dc_errors[0], dict):
                detail = str(dc_errors[0].get("message", ""))
        if not detail:
            detail = (response.text or "")[:_ERROR_BODY_PREVIEW]
        if not detail:
            return f"Bitbucket API error {status}"
        return f"Bitbucket API error {status}: {detail}"

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if not isinstance(exc, BitbucketClientError):
            return
        reason = "transport" if exc.kind is ErrorKind.TRANSPORT else "server_error"
        bitbucket_retries_total.labels(dialect=self.dialect.value, reason=reason).inc()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "%s. Retrying in %.1fs (attempt %d/%d)",
            exc.message,
            delay,
            retry_state.attempt_number,
            self.config.max_retries,
        )
