"""
Fixtures for route tests: the app wired to the in-memory container, with
platform fetches replaced by AsyncMocks so no request leaves the process.
"""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from inbox.main import create_app
from inbox.services.sync import SyncResult


@pytest.fixture
def api_container(container):
    for service in container.sync_services.values():
        service.sync_messages = AsyncMock(return_value=SyncResult())
        service.sync_conversation = AsyncMock(return_value=0)
        service.fetch_conversation = AsyncMock(return_value=[])
    container.auto_reply.notify_toggle = AsyncMock(return_value=True)
    return container


@pytest.fixture
def client(api_container):
    app = create_app(api_container)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
