"""Derived conversation signals shared by hydration and ingestion."""

from typing import List, Sequence
from collections import Counter

from support_context.domain.models.conversation import Message, MessageRole, Sentiment


MAX_RECENT_INTENTS = 5
ESCALATION_INTENT = "escalation_required"


def calculate_dominant_sentiment(messages: Sequence[Message]) -> Sentiment:
    """Strict majority over every sentiment-tagged message; ties are neutral"""

    counts = Counter(m.sentiment for m in messages if m.sentiment is not None)
    if not counts:
        return Sentiment.NEUTRAL

    positive = counts[Sentiment.POSITIVE]
    negative = counts[Sentiment.NEGATIVE]
    neutral = counts[Sentiment.NEUTRAL]

    if positive > negative and positive > neutral:
        return Sentiment.POSITIVE
    if negative > positive and negative > neutral:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def push_intent(recent_intents: Sequence[str], intent: str) -> List[str]:
    """Newest first, capped, duplicates kept"""
    return [intent, *recent_intents][:MAX_RECENT_INTENTS]


def extract_executed_commands(messages: Sequence[Message]) -> List[str]:
    return [
        m.metadata.command_executed
        for m in messages
        if m.metadata is not None and m.metadata.command_executed
    ]


def requires_escalation(recent_intents: Sequence[str], messages: Sequence[Message] = ()) -> bool:
    if ESCALATION_INTENT in recent_intents:
        return True
    return any(m.metadata is not None and m.metadata.escalated for m in messages)


def unique_intents(messages: Sequence[Message]) -> List[str]:
    seen: List[str] = []
    for message in messages:
        if message.intent and message.intent not in seen:
            seen.append(message.intent)
    return seen


def build_summary(messages: Sequence[Message]) -> str:
    """Deterministic synopsis: customer message count and distinct intents"""

    user_messages = [m for m in messages if m.role == MessageRole.USER]
    intents = unique_intents(messages)
    return (
        f"Conversa com {len(user_messages)} mensagens. "
        f"Principais intenções: {', '.join(intents)}."
    )


def build_fallback_summary(messages: Sequence[Message], recent_intents: Sequence[str]) -> str:
    """Synopsis over the last ten messages for contexts without a summary"""

    recent = list(messages)[-10:]
    user_messages = [m for m in recent if m.role == MessageRole.USER]
    intents = ", ".join(recent_intents[:3]) or "nenhuma"
    return (
        f"Conversa recente: {len(user_messages)} mensagens do usuário. "
        f"Últimas intenções: {intents}."
    )
