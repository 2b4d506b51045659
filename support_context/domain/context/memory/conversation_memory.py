from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import uuid
import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from support_context.domain.models.conversation import (
    ConversationContext, Message, MessageMetadata, MessageRole, Sentiment, utcnow
)
from support_context.domain.models.records import ConversationAggregateUpdate, InteractionRecord
from support_context.domain.context.state.state_classifier import classify_conversation_state
from support_context.domain.context.topic_extractor import TopicExtractor
from support_context.infrastructure.config.settings import MemoryCacheConfig
from support_context.infrastructure.observability.logging import ContextLogger, MetricsCollector
from support_context.infrastructure.persistence.interfaces import ConversationStore
from .cache_memory_store import ConversationMemoryCache
from .keyed_lock import KeyedLock
from .signals import (
    build_fallback_summary,
    build_summary,
    calculate_dominant_sentiment,
    push_intent,
    requires_escalation,
)

logger = structlog.get_logger(__name__)
context_logger = ContextLogger(__name__)


class ConversationMemory:
    """Conversation memory for WhatsApp customers.

    Owns the context cache and applies incoming messages to it. Mutations for
    one phone run one at a time behind a per-phone lock, so concurrent
    handlers for the same customer never lose each other's updates while
    different customers proceed in parallel.
    """

    def __init__(
        self,
        store: ConversationStore,
        config: Optional[MemoryCacheConfig] = None,
        topic_extractor: Optional[TopicExtractor] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.clock = clock
        self.metrics = metrics or MetricsCollector()
        self.cache = ConversationMemoryCache(
            store,
            config=config,
            topic_extractor=topic_extractor,
            clock=clock,
            metrics=self.metrics
        )
        self._write_locks = KeyedLock()

    @property
    def config(self) -> MemoryCacheConfig:
        return self.cache.config

    def start(self) -> None:
        self.cache.start()

    async def stop(self) -> None:
        await self.cache.stop()

    async def get_context(self, phone: str, user_id: Optional[str] = None) -> ConversationContext:
        return await self.cache.get(phone, user_id)

    async def add_message(
        self,
        phone: str,
        message: Message,
        persist: bool = True
    ) -> ConversationContext:
        """Apply one message to the customer's context and write it through"""

        async with self._write_locks.hold(phone):
            current = await self.cache.get(phone)
            context = current.model_copy(deep=True)

            context.messages.append(message)
            context.last_message_at = message.timestamp
            context.total_messages += 1

            if message.intent:
                context.recent_intents = push_intent(context.recent_intents, message.intent)

            if message.metadata is not None and message.metadata.command_executed:
                context.executed_commands.append(message.metadata.command_executed)

            context.dominant_sentiment = calculate_dominant_sentiment(context.messages)
            context.conversation_state = classify_conversation_state(
                context.messages,
                context.recent_intents,
                self.clock()
            )
            context.needs_escalation = requires_escalation(context.recent_intents, context.messages)

            # Written once; later messages never refresh it
            if len(context.messages) >= self.config.summary_threshold and context.summary is None:
                context.summary = build_summary(context.messages)
                context.summary_updated_at = self.clock()
                logger.debug(
                    "Generated conversation summary",
                    phone=phone,
                    message_count=len(context.messages)
                )

            if len(context.messages) > self.config.max_messages_per_context:
                context.messages = context.messages[-self.config.max_messages_per_context:]

            await self.cache.put(phone, context)

            context_logger.log_context_update(
                phone,
                "message_added",
                {
                    "role": message.role.value,
                    "intent": message.intent,
                    "state": context.conversation_state.value,
                    "total_messages": context.total_messages
                }
            )

            if persist and message.role != MessageRole.SYSTEM:
                await self._persist_message(context, phone, message)

            return context

    async def record_message(
        self,
        phone: str,
        content: str,
        role: MessageRole = MessageRole.USER,
        intent: Optional[str] = None,
        sentiment: Optional[Sentiment] = None,
        metadata: Optional[MessageMetadata] = None,
        persist: bool = True
    ) -> ConversationContext:
        """Build a message stamped with the current time and add it"""

        message = Message(
            role=role,
            content=content,
            timestamp=self.clock(),
            intent=intent,
            sentiment=sentiment,
            metadata=metadata
        )
        return await self.add_message(phone, message, persist=persist)

    async def _persist_message(
        self,
        context: ConversationContext,
        phone: str,
        message: Message
    ) -> None:
        """Best-effort write through; failures are logged and never retried"""

        try:
            stored = await self.store.upsert_conversation_aggregate(
                phone,
                ConversationAggregateUpdate(
                    last_message_at=message.timestamp,
                    last_intent=message.intent,
                    last_sentiment=message.sentiment
                ),
                conversation_id=context.conversation_id or None
            )
            if not context.conversation_id:
                context.conversation_id = stored.id

            metadata = message.metadata or MessageMetadata()
            await self.store.append_interaction(
                InteractionRecord(
                    conversation_id=context.conversation_id,
                    message_id=f"msg_{uuid.uuid4().hex}",
                    customer_phone=phone,
                    user_id=context.user_id,
                    content=message.content,
                    is_from_customer=message.role == MessageRole.USER,
                    intent=message.intent,
                    sentiment=message.sentiment,
                    response=message.content if message.role == MessageRole.ASSISTANT else None,
                    escalation_required=metadata.escalated,
                    ticket_created=metadata.ticket_created,
                    created_at=message.timestamp
                )
            )
        except Exception as e:
            self.metrics.increment_counter("store.write_failures")
            logger.error("Error persisting message", phone=phone, error=str(e))

    async def extract_topics(self, phone: str) -> List[str]:
        """Recompute the topic list from the held messages and store it"""

        async with self._write_locks.hold(phone):
            current = await self.cache.get(phone)
            topics = self.cache.topic_extractor.extract(current.messages)
            await self.cache.put(phone, current.model_copy(update={"topics": topics}))
            return topics

    async def get_formatted_history(self, phone: str, limit: int = 10) -> List[Dict[str, str]]:
        """Most recent messages, oldest first, as role/content pairs"""

        if limit <= 0:
            return []

        context = await self.get_context(phone)
        return [
            {"role": message.role.value, "content": message.content}
            for message in context.messages[-limit:]
        ]

    async def get_langchain_history(self, phone: str, limit: int = 10) -> List[BaseMessage]:
        """Same window as get_formatted_history as LangChain chat messages"""

        message_types = {
            "user": HumanMessage,
            "assistant": AIMessage,
            "system": SystemMessage,
        }
        history = await self.get_formatted_history(phone, limit)
        return [message_types[item["role"]](content=item["content"]) for item in history]

    async def get_conversation_summary(self, phone: str) -> str:
        context = await self.get_context(phone)
        if context.summary:
            return context.summary
        return build_fallback_summary(context.messages, context.recent_intents)

    async def clear_context(self, phone: str) -> None:
        if await self.cache.clear(phone):
            logger.info("Cleared conversation context", phone=phone)

    async def clear_all_contexts(self) -> None:
        await self.cache.clear_all()
        logger.info("Cleared all conversation contexts")

    async def get_cache_stats(self) -> Dict[str, Any]:
        return await self.cache.get_stats()
