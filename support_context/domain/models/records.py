"""Records exchanged with the external stores and query services."""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from enum import Enum

from .conversation import Sentiment, ensure_utc, utcnow


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class TicketStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class StoredMessage(BaseModel):
    """Message row as kept by the durable conversation store"""
    content: str
    is_from_customer: bool
    created_at: datetime = Field(default_factory=utcnow)
    intent: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    ticket_created: bool = False
    escalation_required: bool = False

    @field_validator("created_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class StoredConversation(BaseModel):
    """Conversation aggregate in the durable store"""
    id: str
    customer_phone: str
    user_id: Optional[str] = None
    customer_name: Optional[str] = None
    last_message_at: datetime = Field(default_factory=utcnow)
    message_count: int = 0
    last_intent: Optional[str] = None
    last_sentiment: Optional[Sentiment] = None
    is_active: bool = True

    @field_validator("last_message_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class UserRecord(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None

    @field_validator("created_at", "last_login_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class ConversationSnapshot(BaseModel):
    """Result of looking a conversation up by phone"""
    conversation: StoredConversation
    messages: List[StoredMessage] = Field(default_factory=list, description="Newest first")
    user: Optional[UserRecord] = None


class ConversationAggregateUpdate(BaseModel):
    """Fields written on every persisted message; message_count is incremented by one"""
    last_message_at: datetime
    last_intent: Optional[str] = None
    last_sentiment: Optional[Sentiment] = None

    @field_validator("last_message_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class InteractionRecord(BaseModel):
    """Immutable log entry for one persisted message"""
    conversation_id: str
    message_id: str
    customer_phone: str
    user_id: Optional[str] = None
    content: str
    is_from_customer: bool
    intent: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    response: Optional[str] = None
    escalation_required: bool = False
    ticket_created: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class SubscriptionRecord(BaseModel):
    id: str
    user_id: str
    plan_type: str
    status: SubscriptionStatus
    monthly_value: float
    renewal_date: datetime
    start_date: datetime
    next_billing_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("renewal_date", "start_date", "next_billing_date", "created_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class TicketRecord(BaseModel):
    id: str
    user_id: str
    status: TicketStatus
    category: str
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    @field_validator("created_at", "resolved_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)


class SessionRecord(BaseModel):
    session_token: str
    user_id: str
    phone: str
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    commands_executed: int = 0

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_timestamps(cls, value):
        return ensure_utc(value)
