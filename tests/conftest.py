"""Shared fixtures for the Doris webhook tests."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from doris_webhook.config import Settings
from doris_webhook.main import create_app
from doris_webhook.models import StreamLoadResult
from doris_webhook.services import StreamLoadClient


ALLOWED_ORIGIN = "https://app.example.com"

SUCCESS_BODY = {
    "TxnId": 1001,
    "Label": "3f0c2a8e-label",
    "Status": "Success",
    "Message": "OK",
    "NumberTotalRows": 1,
    "NumberLoadedRows": 1,
    "NumberFilteredRows": 0,
    "NumberUnselectedRows": 0,
    "LoadBytes": 87,
    "LoadTimeMs": 12,
    "BeginTxnTimeMs": 1,
    "StreamLoadPutTimeMs": 2,
    "ReadDataTimeMs": 0,
    "WriteDataTimeMs": 5,
    "CommitAndPublishTimeMs": 4,
}


@pytest.fixture
def settings():
    """Settings that do not depend on the process environment."""
    return Settings(
        _env_file=None,
        doris_be_http="doris-be:8040",
        doris_password="secret-pass",
        cors_allowed_origin=ALLOWED_ORIGIN,
    )


@pytest.fixture
def load_client():
    """A Stream Load client stand-in that always succeeds."""
    client = MagicMock(spec=StreamLoadClient)
    client.submit = AsyncMock(return_value=StreamLoadResult(**SUCCESS_BODY))
    return client


@pytest.fixture
def client(settings, load_client):
    """Test client wired to the fake Stream Load client."""
    return TestClient(create_app(settings, load_client=load_client))


@pytest.fixture
def doris_client(settings):
    """Factory for real Stream Load clients whose BE is a handler function."""

    def build(handler, **kwargs) -> StreamLoadClient:
        return StreamLoadClient(
            settings.credentials(),
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return build
