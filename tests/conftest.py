"""
Shared fixtures: an in-memory mock directory reached through httpx's ASGI
transport, so no ports are opened.
"""

import httpx
import pytest

from gm_sync.client import DirectoryClient

from .mock_directory import DirectoryState, create_directory_app

API_URL = "http://directory.test/v1"
REST_URL = "http://directory.test/rest"


@pytest.fixture
def directory_state():
    return DirectoryState()


@pytest.fixture
async def directory_client(directory_state):
    app = create_directory_app(directory_state)
    client = DirectoryClient(
        API_URL,
        REST_URL,
        "test-token",
        max_retries=1,
        retry_base_seconds=0,
        burst_size=100,
        period_seconds=1.0,
        transport=httpx.ASGITransport(app=app),
    )
    await client.open()
    yield client
    await client.close()
