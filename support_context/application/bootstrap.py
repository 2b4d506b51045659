"""Wiring of the memory and enrichment services."""

from typing import Callable, Optional
from datetime import datetime

from support_context.domain.context.context_manager import ContextManager
from support_context.domain.context.memory.conversation_memory import ConversationMemory
from support_context.domain.context.topic_extractor import TopicExtractor
from support_context.domain.models.conversation import utcnow
from support_context.infrastructure.config.settings import Settings
from support_context.infrastructure.observability.logging import MetricsCollector
from support_context.infrastructure.persistence.in_memory import (
    InMemoryConversationStore,
    InMemorySessionStore,
    InMemorySubscriptionQuery,
    InMemoryTicketQuery,
    InMemoryUserDirectory,
)
from support_context.infrastructure.persistence.interfaces import (
    ConversationStore,
    InteractionQuery,
    SessionStore,
    SubscriptionQuery,
    TicketQuery,
    UserDirectory,
)


def build_context_manager(
    settings: Optional[Settings] = None,
    store: Optional[ConversationStore] = None,
    users: Optional[UserDirectory] = None,
    subscriptions: Optional[SubscriptionQuery] = None,
    tickets: Optional[TicketQuery] = None,
    interactions: Optional[InteractionQuery] = None,
    sessions: Optional[SessionStore] = None,
    topic_extractor: Optional[TopicExtractor] = None,
    clock: Callable[[], datetime] = utcnow
) -> ContextManager:
    """Build a context manager, filling unset collaborators with in-memory ones.

    The in-memory conversation store doubles as the interaction query when no
    interaction service is given, so behavior analysis sees persisted messages.
    """

    settings = settings or Settings()
    store = store or InMemoryConversationStore()

    if interactions is None:
        interactions = store if isinstance(store, InteractionQuery) else InMemoryConversationStore()

    memory = ConversationMemory(
        store,
        config=settings.cache,
        topic_extractor=topic_extractor,
        clock=clock,
        metrics=MetricsCollector()
    )

    return ContextManager(
        memory,
        users=users or InMemoryUserDirectory(),
        subscriptions=subscriptions or InMemorySubscriptionQuery(),
        tickets=tickets or InMemoryTicketQuery(),
        interactions=interactions,
        sessions=sessions or InMemorySessionStore(clock=clock),
        settings=settings.enrichment,
        clock=clock
    )
