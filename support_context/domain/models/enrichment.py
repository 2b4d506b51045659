from typing import List, Optional, Literal
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from .conversation import ConversationContext, utcnow


class EnrichmentDepth(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    DEEP = "deep"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EnrichmentOptions(BaseModel):
    """Which sections to fetch when enriching a conversation"""
    include_subscription: bool = True
    include_support_history: bool = True
    include_behavior_analysis: bool = True
    include_session_data: bool = True
    depth: EnrichmentDepth = EnrichmentDepth.STANDARD


class UserProfile(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    whatsapp: Optional[str] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None


class SubscriptionInfo(BaseModel):
    id: str
    plan_type: str
    status: str
    monthly_value: float
    renewal_date: datetime
    start_date: datetime
    next_billing_date: Optional[datetime] = None
    days_until_renewal: int
    is_overdue: bool


class SupportHistory(BaseModel):
    total_tickets: int = 0
    open_tickets: int = 0
    resolved_tickets: int = 0
    average_resolution_time: Optional[float] = Field(None, description="Hours")
    last_ticket_date: Optional[datetime] = None
    recent_ticket_categories: List[str] = Field(default_factory=list)


class BehaviorProfile(BaseModel):
    total_interactions: int = 0
    preferred_channel: Literal["whatsapp", "email", "phone"] = "whatsapp"
    last_interaction_date: datetime = Field(default_factory=utcnow)
    engagement_score: int = Field(default=0, ge=0, le=100)
    is_frequent_user: bool = False
    is_high_value: bool = False
    risk_level: RiskLevel = RiskLevel.LOW


class SessionInfo(BaseModel):
    session_id: str
    started_at: datetime
    expires_at: datetime
    commands_executed: int = 0
    is_authenticated: bool = True


class ContextFlags(BaseModel):
    is_first_time_user: bool = True
    has_active_subscription: bool = False
    has_overdue_payment: bool = False
    has_recent_complaint: bool = False
    needs_attention: bool = False
    is_vip: bool = False


class EnrichmentMetadata(BaseModel):
    language: str = "pt-BR"
    depth: EnrichmentDepth = EnrichmentDepth.STANDARD
    degraded_sections: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utcnow)


class EnrichedContext(BaseModel):
    """Request scoped join of conversation memory and account data"""
    conversation: ConversationContext
    user: Optional[UserProfile] = None
    subscription: Optional[SubscriptionInfo] = None
    support_history: SupportHistory = Field(default_factory=SupportHistory)
    behavior: BehaviorProfile = Field(default_factory=BehaviorProfile)
    session: Optional[SessionInfo] = None
    flags: ContextFlags = Field(default_factory=ContextFlags)
    metadata: EnrichmentMetadata = Field(default_factory=EnrichmentMetadata)
