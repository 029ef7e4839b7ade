"""
Global test configuration - shared fixtures.

Fixtures defined here are available to every test module. Data builders
and the in-memory Supabase double live in factories.py.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import InMemorySupabase, make_mock_supabase, make_settings
from inbox.container import build_container
from inbox.services.platforms.base import SendResult


@pytest.fixture
def mock_supabase_factory():
    """
    Factory for Supabase mocks with given data.

    Usage:
        def test_something(mock_supabase_factory):
            mock = mock_supabase_factory([{"message_id": "m1"}])
    """
    return make_mock_supabase


@pytest.fixture
def memory_db():
    """Fresh in-memory Supabase double."""
    return InMemorySupabase()


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
def container(memory_db, test_settings):
    """
    Application container on the in-memory database.

    Platform senders are replaced by AsyncMocks that succeed; tests override
    their return values as needed.
    """
    built = build_container(db=memory_db, config=test_settings)
    for platform in ("facebook", "instagram"):
        sender = MagicMock()
        sender.send_message = AsyncMock(
            return_value=SendResult(success=True, message_id=f"sent_{platform}_1")
        )
        built.auto_reply.senders[platform] = sender
    return built
