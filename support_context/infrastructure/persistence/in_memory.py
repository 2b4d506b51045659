from typing import Callable, Dict, List, Optional
import asyncio
import re
import uuid
from datetime import datetime

from support_context.domain.models.conversation import utcnow
from support_context.domain.models.records import (
    ConversationAggregateUpdate,
    ConversationSnapshot,
    InteractionRecord,
    SessionRecord,
    SessionStatus,
    StoredConversation,
    StoredMessage,
    SubscriptionRecord,
    SubscriptionStatus,
    TicketRecord,
    UserRecord,
)


def normalize_phone(phone: str) -> str:
    """Strip everything but digits"""
    return re.sub(r"\D", "", phone)


class InMemoryConversationStore:
    """Process local conversation store, also answers interaction queries"""

    def __init__(self):
        self.conversations: Dict[str, StoredConversation] = {}
        self.messages: Dict[str, List[StoredMessage]] = {}
        self.interactions: List[InteractionRecord] = []
        self._lock = asyncio.Lock()

    async def find_by_phone(self, phone: str, message_limit: int) -> Optional[ConversationSnapshot]:
        async with self._lock:
            conversation = self.conversations.get(phone)
            if conversation is None:
                return None

            stored = self.messages.get(conversation.id, [])
            newest_first = sorted(stored, key=lambda m: m.created_at, reverse=True)

            return ConversationSnapshot(
                conversation=conversation.model_copy(),
                messages=newest_first[:message_limit],
            )

    async def create_conversation(self, phone: str, user_id: Optional[str] = None) -> StoredConversation:
        async with self._lock:
            if phone in self.conversations:
                return self.conversations[phone].model_copy()

            conversation = StoredConversation(
                id=str(uuid.uuid4()),
                customer_phone=phone,
                user_id=user_id,
            )
            self.conversations[phone] = conversation
            self.messages[conversation.id] = []
            return conversation.model_copy()

    async def upsert_conversation_aggregate(
        self,
        phone: str,
        update: ConversationAggregateUpdate,
        conversation_id: Optional[str] = None,
    ) -> StoredConversation:
        async with self._lock:
            conversation = self.conversations.get(phone)
            if conversation is None:
                conversation = StoredConversation(
                    id=conversation_id or str(uuid.uuid4()),
                    customer_phone=phone,
                )
                self.conversations[phone] = conversation
                self.messages[conversation.id] = []

            conversation.last_message_at = update.last_message_at
            conversation.message_count += 1
            conversation.last_intent = update.last_intent
            conversation.last_sentiment = update.last_sentiment
            return conversation.model_copy()

    async def append_interaction(self, record: InteractionRecord) -> None:
        async with self._lock:
            self.interactions.append(record)
            self.messages.setdefault(record.conversation_id, []).append(
                StoredMessage(
                    content=record.content,
                    is_from_customer=record.is_from_customer,
                    created_at=record.created_at,
                    intent=record.intent,
                    sentiment=record.sentiment,
                    ticket_created=record.ticket_created,
                    escalation_required=record.escalation_required,
                )
            )

    async def list_interactions(self, user_id: str, limit: int = 100) -> List[InteractionRecord]:
        async with self._lock:
            matching = [i for i in self.interactions if i.user_id == user_id]
            matching.sort(key=lambda i: i.created_at, reverse=True)
            return matching[:limit]


class InMemoryUserDirectory:
    def __init__(self, users: Optional[List[UserRecord]] = None):
        self.users: Dict[str, UserRecord] = {u.id: u for u in users or []}

    def add(self, user: UserRecord):
        self.users[user.id] = user

    async def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    async def find_user_by_phone(self, phone: str) -> Optional[UserRecord]:
        candidates = {phone, normalize_phone(phone)}
        for user in self.users.values():
            if user.phone in candidates or user.whatsapp in candidates:
                return user
            if user.phone and normalize_phone(user.phone) in candidates:
                return user
        return None


class InMemorySubscriptionQuery:
    def __init__(self, subscriptions: Optional[List[SubscriptionRecord]] = None):
        self.subscriptions: List[SubscriptionRecord] = list(subscriptions or [])

    def add(self, subscription: SubscriptionRecord):
        self.subscriptions.append(subscription)

    def _latest(self, user_id: str, statuses) -> Optional[SubscriptionRecord]:
        matching = [
            s for s in self.subscriptions
            if s.user_id == user_id and s.status in statuses
        ]
        if not matching:
            return None
        return max(matching, key=lambda s: s.created_at)

    async def find_active_or_overdue_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self._latest(
            user_id,
            {SubscriptionStatus.ACTIVE, SubscriptionStatus.OVERDUE, SubscriptionStatus.PAUSED},
        )

    async def find_active_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self._latest(user_id, {SubscriptionStatus.ACTIVE})


class InMemoryTicketQuery:
    def __init__(self, tickets: Optional[List[TicketRecord]] = None):
        self.tickets: List[TicketRecord] = list(tickets or [])

    def add(self, ticket: TicketRecord):
        self.tickets.append(ticket)

    async def list_tickets(self, user_id: str, limit: int = 50) -> List[TicketRecord]:
        matching = [t for t in self.tickets if t.user_id == user_id]
        matching.sort(key=lambda t: t.created_at, reverse=True)
        return matching[:limit]


class InMemorySessionStore:
    def __init__(
        self,
        sessions: Optional[List[SessionRecord]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sessions: List[SessionRecord] = list(sessions or [])
        self.clock = clock

    def add(self, session: SessionRecord):
        self.sessions.append(session)

    async def find_active_session(self, user_id: str, phone: str) -> Optional[SessionRecord]:
        now = self.clock()
        matching = [
            s for s in self.sessions
            if s.user_id == user_id
            and s.phone == phone
            and s.status == SessionStatus.ACTIVE
            and s.expires_at > now
        ]
        if not matching:
            return None
        return max(matching, key=lambda s: s.created_at)
