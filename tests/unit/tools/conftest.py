"""Fixtures for tool tests: a ToolContext over a mocked client."""

from unittest.mock import AsyncMock, Mock

import pytest

from bitbucket_bridge.connectors.bitbucket.client import BitbucketClient, PageResult
from bitbucket_bridge.connectors.bitbucket.dialect import Dialect
from bitbucket_bridge.connectors.bitbucket.paths import PathBuilder
from bitbucket_bridge.tools.context import ToolContext


def _mock_client(dialect: Dialect) -> Mock:
    client = Mock(spec=BitbucketClient)
    client.dialect = dialect
    client.base_url = "https://example.invalid"
    client.fetch_one = AsyncMock(return_value={})
    client.fetch_text = AsyncMock(return_value="")
    client.fetch_page = AsyncMock(return_value=PageResult(items=[]))
    return client


@pytest.fixture
def cloud_ctx():
    return ToolContext(
        client=_mock_client(Dialect.CLOUD),
        paths=PathBuilder(Dialect.CLOUD),
        default_workspace="acme",
    )


@pytest.fixture
def dc_ctx():
    return ToolContext(
        client=_mock_client(Dialect.DATA_CENTER),
        paths=PathBuilder(Dialect.DATA_CENTER),
        default_workspace="PROJ",
    )


@pytest.fixture
def no_default_ctx():
    return ToolContext(client=_mock_client(Dialect.CLOUD), paths=PathBuilder(Dialect.CLOUD))
