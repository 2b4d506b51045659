from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without a timezone are taken as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MessageRole(str, Enum):
    """Author of a conversation turn"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Sentiment(str, Enum):
    """Sentiment tag assigned by the upstream classifier"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ConversationState(str, Enum):
    """Coarse phase of a conversation"""
    GREETING = "greeting"
    INQUIRY = "inquiry"
    SUPPORT = "support"
    RESOLUTION = "resolution"
    ESCALATION = "escalation"
    IDLE = "idle"


class MessageMetadata(BaseModel):
    """Flags attached to a message by the chatbot runtime"""
    ticket_created: bool = False
    escalated: bool = False
    command_executed: Optional[str] = Field(None, description="Name of an executed action")

    model_config = {"frozen": True}


class Message(BaseModel):
    """One turn in a conversation"""
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    intent: Optional[str] = Field(None, description="Upstream intent tag, e.g. 'complaint'")
    sentiment: Optional[Sentiment] = None
    metadata: Optional[MessageMetadata] = None

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ConversationContext(BaseModel):
    """Per-customer conversation memory and derived signals"""
    conversation_id: str = ""
    customer_phone: str
    user_id: Optional[str] = None
    customer_name: Optional[str] = None

    messages: List[Message] = Field(default_factory=list)

    summary: Optional[str] = None
    summary_updated_at: Optional[datetime] = None

    recent_intents: List[str] = Field(default_factory=list, description="Most recent first")
    dominant_sentiment: Sentiment = Sentiment.NEUTRAL
    topics: List[str] = Field(default_factory=list)
    executed_commands: List[str] = Field(default_factory=list)
    conversation_state: ConversationState = ConversationState.GREETING

    is_first_interaction: bool = True
    needs_escalation: bool = False

    last_message_at: datetime = Field(default_factory=utcnow)
    total_messages: int = 0

    @field_validator("summary_updated_at", "last_message_at")
    @classmethod
    def normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @classmethod
    def empty(cls, phone: str, user_id: Optional[str] = None) -> "ConversationContext":
        """Fresh context for a customer with no usable history"""
        return cls(customer_phone=phone, user_id=user_id)
