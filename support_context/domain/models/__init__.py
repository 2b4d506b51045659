from .conversation import (
    ConversationContext,
    ConversationState,
    Message,
    MessageMetadata,
    MessageRole,
    Sentiment,
)
from .enrichment import (
    BehaviorProfile,
    ContextFlags,
    EnrichedContext,
    EnrichmentDepth,
    EnrichmentMetadata,
    EnrichmentOptions,
    RiskLevel,
    SessionInfo,
    SubscriptionInfo,
    SupportHistory,
    UserProfile,
)

__all__ = [
    "ConversationContext",
    "ConversationState",
    "Message",
    "MessageMetadata",
    "MessageRole",
    "Sentiment",
    "BehaviorProfile",
    "ContextFlags",
    "EnrichedContext",
    "EnrichmentDepth",
    "EnrichmentMetadata",
    "EnrichmentOptions",
    "RiskLevel",
    "SessionInfo",
    "SubscriptionInfo",
    "SupportHistory",
    "UserProfile",
]
