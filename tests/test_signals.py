"""Tests for derived conversation signals."""

from support_context.domain.context.memory.signals import (
    build_fallback_summary,
    build_summary,
    calculate_dominant_sentiment,
    extract_executed_commands,
    push_intent,
    requires_escalation,
)
from support_context.domain.models.conversation import (
    Message, MessageMetadata, MessageRole, Sentiment
)


def msg(sentiment=None, intent=None, role=MessageRole.USER, metadata=None) -> Message:
    return Message(role=role, content="texto", sentiment=sentiment, intent=intent, metadata=metadata)


class TestDominantSentiment:

    def test_strict_majority_wins(self):
        messages = [msg(Sentiment.POSITIVE), msg(Sentiment.POSITIVE), msg(Sentiment.NEGATIVE)]
        assert calculate_dominant_sentiment(messages) == Sentiment.POSITIVE

    def test_three_way_tie_is_neutral(self):
        messages = [msg(Sentiment.POSITIVE), msg(Sentiment.NEGATIVE), msg(Sentiment.NEUTRAL)]
        assert calculate_dominant_sentiment(messages) == Sentiment.NEUTRAL

    def test_two_way_tie_is_neutral(self):
        messages = [msg(Sentiment.NEGATIVE), msg(Sentiment.POSITIVE)]
        assert calculate_dominant_sentiment(messages) == Sentiment.NEUTRAL

    def test_negative_majority(self):
        messages = [msg(Sentiment.NEGATIVE), msg(Sentiment.NEGATIVE), msg(Sentiment.NEUTRAL), msg()]
        assert calculate_dominant_sentiment(messages) == Sentiment.NEGATIVE

    def test_untagged_messages_are_neutral(self):
        assert calculate_dominant_sentiment([msg(), msg()]) == Sentiment.NEUTRAL
        assert calculate_dominant_sentiment([]) == Sentiment.NEUTRAL


class TestIntents:

    def test_push_intent_is_newest_first_and_capped(self):
        intents = []
        for name in ["a", "b", "c", "d", "e", "f"]:
            intents = push_intent(intents, name)
        assert intents == ["f", "e", "d", "c", "b"]

    def test_push_intent_keeps_duplicates(self):
        assert push_intent(["complaint"], "complaint") == ["complaint", "complaint"]

    def test_requires_escalation_from_intent_or_metadata(self):
        assert requires_escalation(["escalation_required"])
        assert not requires_escalation(["complaint"])
        assert requires_escalation([], [msg(metadata=MessageMetadata(escalated=True))])


class TestSummaries:

    def test_summary_counts_customer_messages_and_dedupes_intents(self):
        messages = [
            msg(intent="complaint"),
            msg(role=MessageRole.ASSISTANT),
            msg(intent="complaint"),
            msg(intent="cancel"),
        ]
        assert build_summary(messages) == (
            "Conversa com 3 mensagens. Principais intenções: complaint, cancel."
        )

    def test_fallback_summary_without_intents(self):
        summary = build_fallback_summary([msg(), msg(role=MessageRole.ASSISTANT)], [])
        assert summary == "Conversa recente: 1 mensagens do usuário. Últimas intenções: nenhuma."

    def test_fallback_summary_uses_three_latest_intents(self):
        summary = build_fallback_summary([msg()], ["d", "c", "b", "a"])
        assert summary.endswith("Últimas intenções: d, c, b.")

    def test_executed_commands_from_metadata(self):
        messages = [
            msg(metadata=MessageMetadata(command_executed="pause_subscription")),
            msg(metadata=MessageMetadata(ticket_created=True)),
            msg(),
        ]
        assert extract_executed_commands(messages) == ["pause_subscription"]
