"""Shared pytest fixtures for Bitbucket bridge tests.

Fixture Organization:
    - Environment fixtures: isolate settings from the developer's env and .env
    - Client fixtures: Cloud and Data Center clients with zero-delay sleeps
"""

import os
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from bitbucket_bridge.config import reset_config
from bitbucket_bridge.connectors.bitbucket.client import BitbucketClient, ClientConfig
from bitbucket_bridge.connectors.bitbucket.dialect import Dialect

CLOUD_URL = "https://api.bitbucket.org/2.0"
DC_URL = "https://git.example.com/rest/api/latest"
TEST_TOKEN = "bb_test_token_123"

_SETTINGS_PREFIXES = ("BITBUCKET_", "LOG_LEVEL", "LOG_FORMAT", "MCP_")


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Remove bridge settings from the environment and hide any .env file."""
    for key in list(os.environ.keys()):
        if key.upper().startswith(_SETTINGS_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield monkeypatch
    reset_config()


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture
def sleep_mock():
    """Records backoff sleeps instead of waiting."""
    return AsyncMock()


@pytest.fixture
def cloud_config():
    return ClientConfig(base_url=CLOUD_URL, token=TEST_TOKEN, timeout=5.0, max_retries=3, retry_delay=1.0)


@pytest.fixture
def dc_config():
    return ClientConfig(base_url=DC_URL, token=TEST_TOKEN, timeout=5.0, max_retries=3, retry_delay=1.0)


@pytest_asyncio.fixture
async def cloud_client(cloud_config, sleep_mock):
    client = BitbucketClient(cloud_config, sleep=sleep_mock)
    assert client.dialect is Dialect.CLOUD
    yield client
    await client.close()


@pytest_asyncio.fixture
async def dc_client(dc_config, sleep_mock):
    client = BitbucketClient(dc_config, sleep=sleep_mock)
    assert client.dialect is Dialect.DATA_CENTER
    yield client
    await client.close()
