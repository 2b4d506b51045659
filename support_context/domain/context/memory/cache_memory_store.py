from typing import Any, Callable, Dict, List, Optional
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
import structlog

from support_context.domain.models.conversation import (
    ConversationContext, Message, MessageMetadata, MessageRole, utcnow
)
from support_context.domain.models.records import ConversationSnapshot
from support_context.domain.context.state.state_classifier import classify_conversation_state
from support_context.domain.context.topic_extractor import FrequencyTopicExtractor, TopicExtractor
from support_context.infrastructure.config.settings import MemoryCacheConfig
from support_context.infrastructure.observability.logging import ContextLogger, MetricsCollector
from support_context.infrastructure.persistence.interfaces import ConversationStore
from .keyed_lock import KeyedLock
from .signals import (
    MAX_RECENT_INTENTS,
    calculate_dominant_sentiment,
    extract_executed_commands,
    requires_escalation,
)

logger = structlog.get_logger(__name__)
context_logger = ContextLogger(__name__)

# Stored messages scanned for intents when hydrating
HYDRATION_INTENT_WINDOW = 10


@dataclass
class CacheEntry:
    context: ConversationContext
    last_accessed_at: datetime
    access_count: int = 1


class ConversationMemoryCache:
    """Bounded TTL + LRU cache of conversation contexts keyed by phone.

    Misses hydrate from the durable conversation store. At most one context
    lives per phone: concurrent misses for the same phone wait on a per-key
    lock and share the first hydration.
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
        self.config = config or MemoryCacheConfig()
        self.topic_extractor = topic_extractor or FrequencyTopicExtractor()
        self.clock = clock
        self.metrics = metrics or MetricsCollector()

        self.cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._hydration_locks = KeyedLock()
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def ttl(self) -> timedelta:
        return timedelta(milliseconds=self.config.ttl_ms)

    async def get(self, phone: str, user_id: Optional[str] = None) -> ConversationContext:
        """Return the cached context, hydrating it on a miss"""

        context = await self._get_cached(phone)
        if context is not None:
            return context

        async with self._hydration_locks.hold(phone):
            # Another task may have hydrated while we waited
            context = await self._get_cached(phone)
            if context is not None:
                return context

            self.metrics.increment_counter("cache.misses")
            logger.debug("Memory cache miss, loading from store", phone=phone)

            context = await self._load_from_store(phone, user_id)
            await self.put(phone, context)
            return context

    async def _get_cached(self, phone: str) -> Optional[ConversationContext]:
        async with self._lock:
            entry = self.cache.get(phone)
            if entry is None:
                return None

            entry.last_accessed_at = self.clock()
            entry.access_count += 1

        self.metrics.increment_counter("cache.hits")
        context_logger.log_cache_event(
            "hit",
            phone,
            {"messages": len(entry.context.messages), "access_count": entry.access_count}
        )
        return entry.context

    async def put(self, phone: str, context: ConversationContext) -> None:
        """Insert or overwrite, evicting the least recently accessed entry when full"""

        async with self._lock:
            existing = self.cache.get(phone)
            if existing is None and len(self.cache) >= self.config.max_size:
                self._evict_lru()

            self.cache[phone] = CacheEntry(
                context=context,
                last_accessed_at=self.clock(),
                access_count=existing.access_count if existing else 1
            )

    def _evict_lru(self) -> None:
        if not self.cache:
            return

        oldest_key = min(self.cache, key=lambda k: self.cache[k].last_accessed_at)
        del self.cache[oldest_key]

        self.metrics.increment_counter("cache.evictions")
        context_logger.log_cache_event("evict", oldest_key)

    async def cleanup_expired(self) -> int:
        """Drop entries idle for longer than the TTL and return how many went"""

        async with self._lock:
            now = self.clock()
            expired_keys = [
                key for key, entry in self.cache.items()
                if now - entry.last_accessed_at > self.ttl
            ]

            for key in expired_keys:
                del self.cache[key]

        if expired_keys:
            self.metrics.increment_counter("cache.expirations", len(expired_keys))
            logger.debug("Cache cleanup removed expired entries", count=len(expired_keys))

        return len(expired_keys)

    async def _sweep_loop(self) -> None:
        interval = self.config.sweep_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_expired()
            except Exception as e:
                self.metrics.increment_counter("cache.sweep_failures")
                logger.error("Cache sweep error", error=str(e))

    def start(self) -> None:
        """Start the periodic TTL sweep on the running event loop"""

        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info("Cache sweep started", interval_ms=self.config.sweep_interval_ms)

    async def stop(self) -> None:
        if self._sweep_task is None:
            return

        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("Cache sweep stopped")

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def clear(self, phone: str) -> bool:
        async with self._lock:
            return self.cache.pop(phone, None) is not None

    async def clear_all(self) -> None:
        async with self._lock:
            self.cache.clear()

    def __contains__(self, phone: str) -> bool:
        return phone in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    async def get_stats(self) -> Dict[str, Any]:
        async with self._lock:
            entries: List[Dict[str, Any]] = [
                {
                    "phone": key,
                    "messages": len(entry.context.messages),
                    "last_accessed": entry.last_accessed_at,
                    "access_count": entry.access_count
                }
                for key, entry in self.cache.items()
            ]
            return {
                "size": len(self.cache),
                "max_size": self.config.max_size,
                "entries": entries
            }

    async def _load_from_store(self, phone: str, user_id: Optional[str]) -> ConversationContext:
        try:
            snapshot = await self.store.find_by_phone(
                phone, message_limit=self.config.max_messages_per_context
            )
            if snapshot is None:
                conversation = await self.store.create_conversation(phone, user_id)
                snapshot = ConversationSnapshot(conversation=conversation)

            return self._context_from_snapshot(phone, snapshot)

        except Exception as e:
            logger.error("Error loading conversation context", phone=phone, error=str(e))
            self.metrics.increment_counter("cache.hydration_failures")
            return ConversationContext.empty(phone, user_id)

    def _context_from_snapshot(self, phone: str, snapshot: ConversationSnapshot) -> ConversationContext:
        conversation = snapshot.conversation

        # Stored newest first, memory holds chronological order
        messages = [
            Message(
                role=MessageRole.USER if stored.is_from_customer else MessageRole.ASSISTANT,
                content=stored.content,
                timestamp=stored.created_at,
                intent=stored.intent,
                sentiment=stored.sentiment,
                metadata=MessageMetadata(
                    ticket_created=stored.ticket_created,
                    escalated=stored.escalation_required
                )
            )
            for stored in reversed(snapshot.messages)
        ]

        window_intents = [
            stored.intent
            for stored in snapshot.messages[:HYDRATION_INTENT_WINDOW]
            if stored.intent
        ]
        recent_intents = window_intents[:MAX_RECENT_INTENTS]

        customer_name = conversation.customer_name
        if customer_name is None and snapshot.user is not None:
            customer_name = snapshot.user.name

        return ConversationContext(
            conversation_id=conversation.id,
            customer_phone=phone,
            user_id=conversation.user_id,
            customer_name=customer_name,
            messages=messages,
            recent_intents=recent_intents,
            dominant_sentiment=calculate_dominant_sentiment(messages),
            topics=self.topic_extractor.extract(messages),
            executed_commands=extract_executed_commands(messages),
            conversation_state=classify_conversation_state(messages, recent_intents, self.clock()),
            is_first_interaction=len(messages) == 0,
            needs_escalation=requires_escalation(window_intents, messages),
            last_message_at=conversation.last_message_at,
            total_messages=conversation.message_count
        )
