"""Contracts for the stores and query services the core depends on."""

from typing import List, Optional, Protocol, runtime_checkable

from support_context.domain.models.records import (
    ConversationAggregateUpdate,
    ConversationSnapshot,
    InteractionRecord,
    SessionRecord,
    StoredConversation,
    SubscriptionRecord,
    TicketRecord,
    UserRecord,
)


@runtime_checkable
class ConversationStore(Protocol):
    """Durable conversation and message store"""

    async def find_by_phone(self, phone: str, message_limit: int) -> Optional[ConversationSnapshot]:
        ...

    async def create_conversation(self, phone: str, user_id: Optional[str] = None) -> StoredConversation:
        ...

    async def upsert_conversation_aggregate(
        self,
        phone: str,
        update: ConversationAggregateUpdate,
        conversation_id: Optional[str] = None,
    ) -> StoredConversation:
        ...

    async def append_interaction(self, record: InteractionRecord) -> None:
        ...


@runtime_checkable
class UserDirectory(Protocol):
    async def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        ...

    async def find_user_by_phone(self, phone: str) -> Optional[UserRecord]:
        ...


@runtime_checkable
class SubscriptionQuery(Protocol):
    async def find_active_or_overdue_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Most recent subscription in ACTIVE, OVERDUE or PAUSED"""
        ...

    async def find_active_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...


@runtime_checkable
class TicketQuery(Protocol):
    async def list_tickets(self, user_id: str, limit: int = 50) -> List[TicketRecord]:
        """Newest first"""
        ...


@runtime_checkable
class InteractionQuery(Protocol):
    async def list_interactions(self, user_id: str, limit: int = 100) -> List[InteractionRecord]:
        """Newest first"""
        ...


@runtime_checkable
class SessionStore(Protocol):
    async def find_active_session(self, user_id: str, phone: str) -> Optional[SessionRecord]:
        ...
