"""Shared fixtures: in-memory collaborators and a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest

from support_context.application.bootstrap import build_context_manager
from support_context.infrastructure.config.settings import (
    EnrichmentSettings, MemoryCacheConfig, Settings
)
from support_context.infrastructure.persistence.in_memory import (
    InMemoryConversationStore,
    InMemorySessionStore,
    InMemorySubscriptionQuery,
    InMemoryTicketQuery,
    InMemoryUserDirectory,
)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache_config():
    return MemoryCacheConfig(
        max_size=3,
        ttl_ms=60_000,
        max_messages_per_context=10,
        summary_threshold=5
    )


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def users():
    return InMemoryUserDirectory()


@pytest.fixture
def subscriptions():
    return InMemorySubscriptionQuery()


@pytest.fixture
def tickets():
    return InMemoryTicketQuery()


@pytest.fixture
def sessions(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def settings(cache_config):
    return Settings(
        cache=cache_config,
        enrichment=EnrichmentSettings(fetch_timeout_seconds=0.2)
    )


@pytest.fixture
def manager(settings, store, users, subscriptions, tickets, sessions, clock):
    return build_context_manager(
        settings,
        store=store,
        users=users,
        subscriptions=subscriptions,
        tickets=tickets,
        sessions=sessions,
        clock=clock
    )


@pytest.fixture
def memory(manager):
    return manager.memory
