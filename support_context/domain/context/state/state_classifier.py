from typing import Optional, Sequence
from datetime import datetime, timedelta

from support_context.domain.models.conversation import ConversationState, Message, ensure_utc, utcnow


IDLE_AFTER = timedelta(minutes=30)


def classify_conversation_state(
    messages: Sequence[Message],
    recent_intents: Sequence[str],
    now: Optional[datetime] = None
) -> ConversationState:
    """Map message and intent history to a conversation phase.

    Re-evaluated from scratch on every call, so any state can follow any
    other. Checks run in precedence order against the most recent intent:
    escalation, complaint, resolved/thanks, then any intent at all. With no
    intents the conversation is idle once the last message is older than
    thirty minutes.
    """

    if not messages:
        return ConversationState.GREETING

    last_intent = recent_intents[0] if recent_intents else None

    if last_intent is not None:
        if "escalation" in last_intent:
            return ConversationState.ESCALATION
        if "complaint" in last_intent:
            return ConversationState.SUPPORT
        if "resolved" in last_intent or "thanks" in last_intent:
            return ConversationState.RESOLUTION
        return ConversationState.INQUIRY

    now = ensure_utc(now) if now is not None else utcnow()
    if now - ensure_utc(messages[-1].timestamp) > IDLE_AFTER:
        return ConversationState.IDLE

    return ConversationState.INQUIRY
