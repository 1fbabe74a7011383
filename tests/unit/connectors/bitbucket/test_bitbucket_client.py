"""Unit tests for the Bitbucket API client.

Tests BitbucketClient with:
- Authentication headers and configuration
- Error classification (404, 401/403, 409, other 4xx, invalid JSON)
- Retries with exponential backoff (5xx and transport errors only)
- Cloud pagination (pagelen/page, `next` links)
- Data Center pagination (limit/start, isLastPage/nextPageStart)
- Fetch-all cap at 1000 items
"""

import asyncio
import itertools
import json
from unittest.mock import AsyncMock, Mock, call, patch

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from prometheus_client import REGISTRY

from bitbucket_bridge.connectors.bitbucket.client import (
    ALL_ITEMS_CAP,
    MAX_BACKOFF,
    BitbucketClient,
    BitbucketClientError,
    ClientConfig,
    ErrorKind,
    PageRequest,
    classify_status,
    compute_backoff,
)
from bitbucket_bridge.connectors.bitbucket.dialect import Dialect

CLOUD_URL = "https://api.bitbucket.org/2.0"
DC_URL = "https://git.example.com/rest/api/latest"
TOKEN = "bb_test_token_123"


# =============================================================================
# Test Helpers
# =============================================================================


def _mock_response(
    status_code: int = 200,
    json_data: dict | list | None = None,
    text: str | None = None,
) -> Mock:
    """Create a mock httpx.Response with given attributes."""
    resp = Mock(spec=httpx.Response)
    resp.status_code = status_code
    if json_data is not None:
        body = json.dumps(json_data)
        resp.json.return_value = json_data
    else:
        body = text or ""
        resp.json.side_effect = ValueError("Expecting value")
    resp.text = body
    resp.content = body.encode()
    resp.headers = {}
    return resp


def _cloud_pages(page_size: int, pages: int | None = None):
    """side_effect producing Cloud pages; `pages=None` means never-ending."""
    counter = itertools.count(1)

    def respond(method, url, params=None):
        n = next(counter)
        body = {
            "values": [f"item-{n}-{i}" for i in range(page_size)],
            "pagelen": page_size,
            "size": 5000,
        }
        if pages is None or n < pages:
            body["next"] = f"{CLOUD_URL}/repositories/acme?pagelen={page_size}&page={n + 1}"
        return _mock_response(200, body)

    return respond


def _dc_pages(page_size: int, pages: int | None = None):
    """side_effect producing Data Center pages."""
    counter = itertools.count(0)

    def respond(method, url, params=None):
        n = next(counter)
        start = n * page_size
        last = pages is not None and n + 1 >= pages
        body = {
            "values": [f"item-{start + i}" for i in range(page_size)],
            "size": page_size,
            "limit": page_size,
            "start": start,
            "isLastPage": last,
        }
        if not last:
            body["nextPageStart"] = start + page_size
        return _mock_response(200, body)

    return respond


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


# =============================================================================
# Configuration Tests
# =============================================================================


class TestClientConfiguration:
    """Test client initialization and configuration."""

    def test_bearer_token_in_headers(self, cloud_client):
        assert cloud_client._client.headers["Authorization"] == f"Bearer {TOKEN}"

    def test_accept_and_user_agent_headers(self, cloud_client):
        headers = cloud_client._client.headers
        assert headers["Accept"] == "application/json"
        assert "bitbucket-bridge" in headers["User-Agent"]

    def test_per_attempt_timeout(self, cloud_client):
        assert cloud_client._client.timeout.read == 5.0

    def test_follows_redirects(self, cloud_client):
        assert cloud_client._client.follow_redirects is True

    def test_base_url_trailing_slash_stripped(self):
        config = ClientConfig(base_url="https://api.bitbucket.org/2.0///", token=TOKEN)
        assert config.base_url == CLOUD_URL

    @pytest.mark.parametrize("url", ["ftp://git.example.com", "git.example.com", ""])
    def test_rejects_non_http_scheme(self, url):
        with pytest.raises(ValueError, match="http or https"):
            ClientConfig(base_url=url, token=TOKEN)

    def test_token_not_in_repr(self, cloud_config, cloud_client):
        assert TOKEN not in repr(cloud_config)
        assert TOKEN not in repr(cloud_client)

    def test_dialect_detected_from_base_url(self, cloud_client, dc_client):
        assert cloud_client.is_cloud is True
        assert dc_client.is_cloud is False

    def test_dialect_override(self, cloud_config):
        client = BitbucketClient(cloud_config, Dialect.DATA_CENTER)
        assert client.dialect is Dialect.DATA_CENTER

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, cloud_config):
        async with BitbucketClient(cloud_config) as client:
            assert client._client.is_closed is False
        assert client._client.is_closed is True


# =============================================================================
# Single Resource Tests
# =============================================================================


class TestFetchOne:
    """Test fetch_one / fetch_text."""

    @pytest.mark.asyncio
    async def test_returns_decoded_json(self, cloud_client):
        mock = AsyncMock(return_value=_mock_response(json_data={"username": "alice"}))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_one("/user")

        assert result == {"username": "alice"}
        mock.assert_awaited_once_with("GET", "/user", params=None)

    @pytest.mark.asyncio
    async def test_query_encoding(self, cloud_client):
        """None values dropped, booleans rendered lowercase."""
        mock = AsyncMock(return_value=_mock_response(json_data={}))

        with patch.object(cloud_client._client, "request", new=mock):
            await cloud_client.fetch_one(
                "/x", {"skip": None, "yes": True, "no": False, "n": 5, "s": "a b"}
            )

        assert mock.await_args.kwargs["params"] == {
            "yes": "true",
            "no": "false",
            "n": "5",
            "s": "a b",
        }

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, cloud_client):
        mock = AsyncMock(return_value=_mock_response(204, text=""))

        with patch.object(cloud_client._client, "request", new=mock):
            assert await cloud_client.fetch_one("/x") is None

    @pytest.mark.asyncio
    async def test_invalid_json_is_request_failed(self, cloud_client, sleep_mock):
        mock = AsyncMock(return_value=_mock_response(200, text="<html>proxy login</html>"))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/user")

        assert exc_info.value.kind is ErrorKind.REQUEST_FAILED
        assert exc_info.value.status_code == 200
        assert mock.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repeated_fetch_is_idempotent(self, dc_client):
        body = {"key": "PROJ", "name": "Project", "links": {"self": [{"href": "x"}]}}
        mock = AsyncMock(return_value=_mock_response(json_data=body))

        with patch.object(dc_client._client, "request", new=mock):
            first = await dc_client.fetch_one("/projects/PROJ", {"expand": True})
            second = await dc_client.fetch_one("/projects/PROJ", {"expand": True})

        assert first == second == body
        assert mock.await_args_list[0] == mock.await_args_list[1]

    @pytest.mark.asyncio
    async def test_fetch_text_returns_raw_body(self, cloud_client):
        diff = "diff --git a/x b/x\n+added\n"
        mock = AsyncMock(return_value=_mock_response(200, text=diff))

        with patch.object(cloud_client._client, "request", new=mock):
            assert await cloud_client.fetch_text("/diff") == diff


# =============================================================================
# Error Classification Tests
# =============================================================================


class TestErrorClassification:
    """Non-2xx responses map to error kinds and are never retried."""

    @pytest.mark.asyncio
    async def test_not_found_single_attempt(self, cloud_client, sleep_mock):
        """A 404 is classified NOT_FOUND after exactly one request."""
        mock = AsyncMock(return_value=_mock_response(404, {"type": "error"}))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/repositories/ws/missing")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.status_code == 404
        assert mock.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.UNAUTHORIZED),
            (409, ErrorKind.CONFLICT),
            (400, ErrorKind.REQUEST_FAILED),
            (422, ErrorKind.REQUEST_FAILED),
            (429, ErrorKind.REQUEST_FAILED),
        ],
    )
    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, cloud_client, sleep_mock, status, kind):
        mock = AsyncMock(return_value=_mock_response(status, {"error": {"message": "nope"}}))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/x")

        assert exc_info.value.kind is kind
        assert exc_info.value.status_code == status
        assert exc_info.value.is_transient is False
        assert mock.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cloud_error_message_extracted(self, cloud_client):
        body = {"type": "error", "error": {"message": "Invalid field name: nme"}}
        mock = AsyncMock(return_value=_mock_response(400, body))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/x")

        assert "Invalid field name: nme" in exc_info.value.message
        assert exc_info.value.body == json.dumps(body)

    @pytest.mark.asyncio
    async def test_data_center_error_message_extracted(self, dc_client):
        body = {"errors": [{"message": "Branch already exists", "context": None}]}
        mock = AsyncMock(return_value=_mock_response(409, body))

        with patch.object(dc_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await dc_client.fetch_one("/x")

        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert "Branch already exists" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_token_never_in_error_message(self, cloud_client):
        mock = AsyncMock(return_value=_mock_response(401, text="Unauthorized"))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/user")

        assert TOKEN not in str(exc_info.value)
        assert TOKEN not in repr(exc_info.value)

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (404, ErrorKind.NOT_FOUND),
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.UNAUTHORIZED),
            (409, ErrorKind.CONFLICT),
            (418, ErrorKind.REQUEST_FAILED),
            (500, ErrorKind.REQUEST_FAILED),
            (503, ErrorKind.REQUEST_FAILED),
        ],
    )
    def test_classify_status(self, status, kind):
        assert classify_status(status) is kind


# =============================================================================
# Retry Tests
# =============================================================================


class TestRetry:
    """Transient failures (5xx, transport) are retried with backoff."""

    @pytest.mark.asyncio
    async def test_two_server_errors_then_success(self, cloud_client, sleep_mock):
        """503, 503, 200 with max_retries=3 succeeds on the third attempt."""
        mock = AsyncMock(
            side_effect=[
                _mock_response(503, text="Service Unavailable"),
                _mock_response(503, text="Service Unavailable"),
                _mock_response(200, {"ok": True}),
            ]
        )

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_one("/x")

        assert result == {"ok": True}
        assert mock.await_count == 3
        assert sleep_mock.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, sleep_mock):
        config = ClientConfig(base_url=CLOUD_URL, token=TOKEN, max_retries=2, retry_delay=0.5)
        client = BitbucketClient(config, sleep=sleep_mock)
        mock = AsyncMock(return_value=_mock_response(502, text="Bad Gateway"))

        with patch.object(client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await client.fetch_one("/x")
        await client.close()

        assert exc_info.value.kind is ErrorKind.REQUEST_FAILED
        assert exc_info.value.status_code == 502
        assert mock.await_count == 3
        assert sleep_mock.await_args_list == [call(0.5), call(1.0)]

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, sleep_mock):
        config = ClientConfig(base_url=CLOUD_URL, token=TOKEN, max_retries=0)
        client = BitbucketClient(config, sleep=sleep_mock)
        mock = AsyncMock(return_value=_mock_response(500, text="boom"))

        with patch.object(client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError):
                await client.fetch_one("/x")
        await client.close()

        assert mock.await_count == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_retried(self, cloud_client):
        mock = AsyncMock(
            side_effect=[
                httpx.ConnectError("Connection refused"),
                _mock_response(200, {"ok": True}),
            ]
        )

        with patch.object(cloud_client._client, "request", new=mock):
            assert await cloud_client.fetch_one("/x") == {"ok": True}

        assert mock.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_retried(self, cloud_client):
        mock = AsyncMock(
            side_effect=[
                httpx.ReadTimeout("timed out"),
                httpx.ConnectTimeout("timed out"),
                _mock_response(200, {"ok": True}),
            ]
        )

        with patch.object(cloud_client._client, "request", new=mock):
            assert await cloud_client.fetch_one("/x") == {"ok": True}

        assert mock.await_count == 3

    @pytest.mark.asyncio
    async def test_transport_failure_after_budget(self, cloud_client):
        mock = AsyncMock(side_effect=httpx.ConnectError("Name or service not known"))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/x")

        assert exc_info.value.kind is ErrorKind.TRANSPORT
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert mock.await_count == 4

    @pytest.mark.asyncio
    async def test_client_error_after_server_error_stops(self, cloud_client):
        mock = AsyncMock(side_effect=[_mock_response(503, text=""), _mock_response(404, {})])

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_one("/x")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert mock.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_logged_without_token(self, cloud_client):
        mock = AsyncMock(side_effect=[_mock_response(500, text=""), _mock_response(200, {})])

        with patch(
            "bitbucket_bridge.connectors.bitbucket.client.logger"
        ) as mock_logger, patch.object(cloud_client._client, "request", new=mock):
            await cloud_client.fetch_one("/x")

        assert mock_logger.warning.call_count == 1
        assert TOKEN not in str(mock_logger.warning.call_args)

    @pytest.mark.asyncio
    async def test_retries_counted(self, cloud_client):
        labels = {"dialect": "cloud", "reason": "server_error"}
        before = _sample("bitbucket_bridge_retries_total", labels)
        mock = AsyncMock(side_effect=[_mock_response(500, text=""), _mock_response(200, {})])

        with patch.object(cloud_client._client, "request", new=mock):
            await cloud_client.fetch_one("/x")

        assert _sample("bitbucket_bridge_retries_total", labels) == before + 1


@given(max_retries=st.integers(min_value=0, max_value=4), failures=st.integers(min_value=0, max_value=6))
@settings(max_examples=60, deadline=None)
def test_succeeds_iff_failures_within_budget(max_retries, failures):
    """N transient failures then success: succeeds iff N <= max_retries."""

    async def scenario():
        config = ClientConfig(base_url=CLOUD_URL, token=TOKEN, max_retries=max_retries)
        client = BitbucketClient(config, sleep=AsyncMock())
        responses = [_mock_response(503, text="")] * failures + [_mock_response(200, {"ok": True})]
        mock = AsyncMock(side_effect=responses)
        try:
            with patch.object(client._client, "request", new=mock):
                try:
                    await client.fetch_one("/x")
                except BitbucketClientError:
                    return False, mock.await_count
                return True, mock.await_count
        finally:
            await client.close()

    succeeded, calls = asyncio.run(scenario())

    assert succeeded is (failures <= max_retries)
    assert calls == min(failures, max_retries) + 1


# =============================================================================
# Backoff Tests
# =============================================================================


class TestComputeBackoff:
    def test_doubles_from_base(self):
        assert [compute_backoff(n, 1.0) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_capped(self):
        assert compute_backoff(5, 1.0) == MAX_BACKOFF
        assert compute_backoff(1000, 1.0) == MAX_BACKOFF

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError):
            compute_backoff(-1, 1.0)

    @given(
        attempt=st.integers(min_value=0, max_value=200),
        base=st.floats(min_value=0.001, max_value=60.0),
    )
    def test_bounded_and_monotonic(self, attempt, base):
        delay = compute_backoff(attempt, base)
        assert 0 < delay <= MAX_BACKOFF
        assert compute_backoff(attempt + 1, base) >= delay


# =============================================================================
# Page Request Tests
# =============================================================================


class TestPageRequest:
    @pytest.mark.parametrize("pagelen", [0, -1, 101])
    def test_pagelen_out_of_range(self, pagelen):
        with pytest.raises(ValueError, match="pagelen"):
            PageRequest(pagelen=pagelen)

    @pytest.mark.parametrize("page", [0, -3])
    def test_page_out_of_range(self, page):
        with pytest.raises(ValueError, match="page"):
            PageRequest(page=page)

    def test_dialect_defaults(self):
        assert PageRequest().resolve_pagelen(Dialect.CLOUD) == 10
        assert PageRequest().resolve_pagelen(Dialect.DATA_CENTER) == 25
        assert PageRequest(pagelen=100).resolve_pagelen(Dialect.CLOUD) == 100

    def test_fetch_all_ignored_with_page(self):
        assert PageRequest(all=True).fetch_all is True
        assert PageRequest(all=True, page=2).fetch_all is False


# =============================================================================
# Cloud Pagination Tests
# =============================================================================


class TestCloudPagination:
    """pagelen/page query params and `next` links."""

    @pytest.mark.asyncio
    async def test_single_page(self, cloud_client):
        body = {
            "values": [{"slug": "a"}, {"slug": "b"}],
            "pagelen": 10,
            "size": 25,
            "page": 1,
            "next": f"{CLOUD_URL}/repositories/acme?page=2",
        }
        mock = AsyncMock(return_value=_mock_response(200, body))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme")

        assert result.items == [{"slug": "a"}, {"slug": "b"}]
        assert result.has_more is True
        assert result.total == 25
        assert result.truncated is False
        mock.assert_awaited_once_with("GET", "/repositories/acme", params={"pagelen": "10"})

    @pytest.mark.asyncio
    async def test_page_and_extra_query(self, cloud_client):
        mock = AsyncMock(return_value=_mock_response(200, {"values": []}))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page(
                "/repositories/acme", PageRequest(pagelen=5, page=3), {"q": 'name ~ "api"'}
            )

        assert result.items == []
        assert result.has_more is False
        assert mock.await_args.kwargs["params"] == {"q": 'name ~ "api"', "pagelen": "5", "page": "3"}

    @pytest.mark.asyncio
    async def test_fetch_all_follows_next_verbatim(self, cloud_client):
        next_url = f"{CLOUD_URL}/repositories/acme?pagelen=2&page=2"
        mock = AsyncMock(
            side_effect=[
                _mock_response(200, {"values": [1, 2], "size": 3, "next": next_url}),
                _mock_response(200, {"values": [3], "size": 3}),
            ]
        )

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(pagelen=2, all=True))

        assert result.items == [1, 2, 3]
        assert result.has_more is False
        assert result.total == 3
        assert mock.await_args_list[1] == call("GET", next_url, params=None)

    @pytest.mark.asyncio
    async def test_foreign_next_link_not_followed(self, cloud_client):
        body = {"values": [1], "next": "https://evil.example.com/steal?page=2"}
        mock = AsyncMock(return_value=_mock_response(200, body))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(all=True))

        assert result.items == [1]
        assert result.has_more is True
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_all_with_explicit_page_is_single_request(self, cloud_client):
        mock = AsyncMock(side_effect=_cloud_pages(page_size=10))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(page=2, all=True))

        assert mock.await_count == 1
        assert len(result.items) == 10
        assert result.has_more is True

    @pytest.mark.asyncio
    async def test_fetch_all_capped(self, cloud_client):
        """Endless upstream stops at exactly 1000 items, flagged truncated."""
        mock = AsyncMock(side_effect=_cloud_pages(page_size=100))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(pagelen=100, all=True))

        assert len(result.items) == ALL_ITEMS_CAP
        assert result.has_more is True
        assert result.truncated is True
        assert mock.await_count == 10

    @pytest.mark.asyncio
    async def test_fetch_all_cap_cuts_partial_page(self, cloud_client):
        mock = AsyncMock(side_effect=_cloud_pages(page_size=30))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(pagelen=30, all=True))

        assert len(result.items) == ALL_ITEMS_CAP
        assert result.items[-1] == "item-34-9"
        assert result.truncated is True
        assert mock.await_count == 34

    @pytest.mark.asyncio
    async def test_exactly_cap_items_not_truncated(self, cloud_client):
        mock = AsyncMock(side_effect=_cloud_pages(page_size=100, pages=10))

        with patch.object(cloud_client._client, "request", new=mock):
            result = await cloud_client.fetch_page("/repositories/acme", PageRequest(pagelen=100, all=True))

        assert len(result.items) == ALL_ITEMS_CAP
        assert result.has_more is False
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_iter_pages_is_lazy(self, cloud_client):
        mock = AsyncMock(side_effect=_cloud_pages(page_size=10))

        with patch.object(cloud_client._client, "request", new=mock):
            pages = cloud_client.iter_pages("/repositories/acme", PageRequest(all=True))
            first = await pages.__anext__()
            await pages.aclose()

        assert len(first.items) == 10
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_payload_without_values_rejected(self, cloud_client):
        mock = AsyncMock(return_value=_mock_response(200, {"uuid": "{abc}"}))

        with patch.object(cloud_client._client, "request", new=mock):
            with pytest.raises(BitbucketClientError) as exc_info:
                await cloud_client.fetch_page("/repositories/acme")

        assert exc_info.value.kind is ErrorKind.REQUEST_FAILED


# =============================================================================
# Data Center Pagination Tests
# =============================================================================


class TestDataCenterPagination:
    """limit/start query params and isLastPage/nextPageStart."""

    @pytest.mark.asyncio
    async def test_single_page(self, dc_client):
        body = {
            "values": [{"slug": "a"}],
            "size": 1,
            "limit": 25,
            "start": 0,
            "isLastPage": False,
            "nextPageStart": 25,
        }
        mock = AsyncMock(return_value=_mock_response(200, body))

        with patch.object(dc_client._client, "request", new=mock):
            result = await dc_client.fetch_page("/projects/PROJ/repos")

        assert result.items == [{"slug": "a"}]
        assert result.has_more is True
        assert result.total is None
        mock.assert_awaited_once_with("GET", "/projects/PROJ/repos", params={"limit": "25"})

    @pytest.mark.asyncio
    async def test_page_maps_to_start(self, dc_client):
        mock = AsyncMock(return_value=_mock_response(200, {"values": [], "isLastPage": True}))

        with patch.object(dc_client._client, "request", new=mock):
            await dc_client.fetch_page("/projects/PROJ/repos", PageRequest(pagelen=10, page=3))

        assert mock.await_args.kwargs["params"] == {"limit": "10", "start": "20"}

    @pytest.mark.asyncio
    async def test_last_page_without_next_start(self, dc_client):
        body = {"values": [1], "isLastPage": False}
        mock = AsyncMock(return_value=_mock_response(200, body))

        with patch.object(dc_client._client, "request", new=mock):
            result = await dc_client.fetch_page("/x", PageRequest(all=True))

        assert result.has_more is False
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_fetch_all_follows_next_page_start(self, dc_client):
        mock = AsyncMock(side_effect=_dc_pages(page_size=25, pages=3))

        with patch.object(dc_client._client, "request", new=mock):
            result = await dc_client.fetch_page("/projects/PROJ/repos", PageRequest(all=True))

        assert len(result.items) == 75
        assert result.has_more is False
        assert result.total == 75
        assert [c.kwargs["params"] for c in mock.await_args_list] == [
            {"limit": "25"},
            {"limit": "25", "start": "25"},
            {"limit": "25", "start": "50"},
        ]

    @pytest.mark.asyncio
    async def test_fetch_all_capped(self, dc_client):
        mock = AsyncMock(side_effect=_dc_pages(page_size=100))

        with patch.object(dc_client._client, "request", new=mock):
            result = await dc_client.fetch_page("/x", PageRequest(pagelen=100, all=True))

        assert len(result.items) == ALL_ITEMS_CAP
        assert result.has_more is True
        assert result.truncated is True
        assert result.total is None

    @pytest.mark.asyncio
    async def test_repeated_fetch_all_is_idempotent(self, dc_client):
        """Each call starts from fresh params; retry state is not shared."""
        mock = AsyncMock(side_effect=_dc_pages(page_size=25, pages=2))
        with patch.object(dc_client._client, "request", new=mock):
            first = await dc_client.fetch_page("/x", PageRequest(all=True), {"state": "OPEN"})

        pages = _dc_pages(page_size=25, pages=2)
        mock = AsyncMock(
            side_effect=[_mock_response(503, text="unavailable"), pages("GET", "/x"), pages("GET", "/x")]
        )
        with patch.object(dc_client._client, "request", new=mock):
            second = await dc_client.fetch_page("/x", PageRequest(all=True), {"state": "OPEN"})

        assert first == second
        assert len(second.items) == 50
        assert [c.kwargs["params"] for c in mock.await_args_list] == [
            {"state": "OPEN", "limit": "25"},
            {"state": "OPEN", "limit": "25"},
            {"state": "OPEN", "limit": "25", "start": "25"},
        ]

    @pytest.mark.asyncio
    async def test_empty_page_stops_fetch_all(self, dc_client):
        body = {"values": [], "isLastPage": False, "nextPageStart": 0}
        mock = AsyncMock(return_value=_mock_response(200, body))

        with patch.object(dc_client._client, "request", new=mock):
            result = await dc_client.fetch_page("/x", PageRequest(all=True))

        assert result.items == []
        assert mock.await_count == 1
