"""Tests for the TTL + LRU conversation cache."""

import asyncio

import pytest

from support_context.domain.context.memory.cache_memory_store import ConversationMemoryCache
from support_context.domain.models.conversation import ConversationContext, ConversationState, MessageRole
from support_context.domain.models.records import StoredConversation, StoredMessage
from support_context.infrastructure.config.settings import MemoryCacheConfig
from support_context.infrastructure.persistence.in_memory import InMemoryConversationStore


class BrokenStore(InMemoryConversationStore):
    async def find_by_phone(self, phone, message_limit):
        raise ConnectionError("database unavailable")


class FlakyClock:
    """Wraps a clock and raises on the next `failures` reads"""

    def __init__(self, clock):
        self.clock = clock
        self.failures = 0

    def __call__(self):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("clock unavailable")
        return self.clock()


class SlowCountingStore(InMemoryConversationStore):
    def __init__(self):
        super().__init__()
        self.lookups = 0
        self.creates = 0

    async def find_by_phone(self, phone, message_limit):
        self.lookups += 1
        await asyncio.sleep(0.01)
        return await super().find_by_phone(phone, message_limit)

    async def create_conversation(self, phone, user_id=None):
        self.creates += 1
        return await super().create_conversation(phone, user_id)


@pytest.fixture
def cache(store, cache_config, clock):
    return ConversationMemoryCache(store, config=cache_config, clock=clock)


class TestCacheBounds:

    async def test_miss_creates_durable_record(self, cache, store):
        context = await cache.get("+5533999999999")

        assert context.is_first_interaction
        assert context.conversation_state == ConversationState.GREETING
        assert context.total_messages == 0
        assert "+5533999999999" in store.conversations
        assert context.conversation_id == store.conversations["+5533999999999"].id

    async def test_hit_returns_same_context_and_counts_access(self, cache):
        first = await cache.get("+551100000001")
        second = await cache.get("+551100000001")

        assert first is second
        stats = await cache.get_stats()
        assert stats["entries"][0]["access_count"] == 2

    async def test_size_never_exceeds_max(self, cache, clock):
        for i in range(10):
            await cache.get(f"+55110000000{i}")
            clock.advance(seconds=1)
            assert len(cache) <= cache.config.max_size

        assert len(cache) == 3

    async def test_evicts_least_recently_accessed(self, cache, clock):
        await cache.get("a")
        clock.advance(seconds=1)
        await cache.get("b")
        clock.advance(seconds=1)
        await cache.get("c")
        clock.advance(seconds=1)
        await cache.get("a")  # refresh, b is now the oldest
        clock.advance(seconds=1)
        await cache.get("d")

        assert "b" not in cache
        assert "a" in cache and "c" in cache and "d" in cache

    async def test_overwrite_of_existing_key_does_not_evict(self, cache, clock):
        for key in ("a", "b", "c"):
            await cache.get(key)
            clock.advance(seconds=1)

        await cache.put("a", ConversationContext.empty("a"))

        assert len(cache) == 3
        assert "b" in cache

    async def test_clear_and_clear_all(self, cache):
        await cache.get("a")
        await cache.get("b")

        assert await cache.clear("a") is True
        assert await cache.clear("a") is False
        assert "a" not in cache

        await cache.clear_all()
        assert len(cache) == 0


class TestTtlSweep:

    async def test_idle_entry_present_until_sweep(self, cache, clock):
        await cache.get("a")
        clock.advance(seconds=30)
        await cache.get("b")
        clock.advance(seconds=31)

        assert "a" in cache

        removed = await cache.cleanup_expired()

        assert removed == 1
        assert "a" not in cache
        assert "b" in cache

    async def test_access_refreshes_ttl(self, cache, clock):
        await cache.get("a")
        clock.advance(seconds=50)
        await cache.get("a")
        clock.advance(seconds=50)

        assert await cache.cleanup_expired() == 0
        assert "a" in cache

    async def test_background_sweep_removes_expired(self, store, clock):
        config = MemoryCacheConfig(ttl_ms=1000, sweep_interval_ms=10)
        cache = ConversationMemoryCache(store, config=config, clock=clock)
        await cache.get("a")
        clock.advance(seconds=2)

        cache.start()
        assert cache.is_sweeping
        await asyncio.sleep(0.1)
        await cache.stop()

        assert "a" not in cache
        assert not cache.is_sweeping

    async def test_sweep_survives_a_failed_pass(self, store, clock):
        flaky = FlakyClock(clock)
        config = MemoryCacheConfig(ttl_ms=1000, sweep_interval_ms=10)
        cache = ConversationMemoryCache(store, config=config, clock=flaky)
        await cache.get("a")
        clock.advance(seconds=2)
        flaky.failures = 1

        cache.start()
        await asyncio.sleep(0.1)

        assert cache.is_sweeping
        assert "a" not in cache
        assert cache.metrics.get_counter("cache.sweep_failures") == 1
        await cache.stop()


class TestHydration:

    async def test_hydrates_history_from_store(self, cache, store, clock):
        conversation = StoredConversation(
            id="conv-1",
            customer_phone="+5511",
            customer_name="Ana",
            message_count=42,
            last_message_at=clock()
        )
        store.conversations["+5511"] = conversation
        store.messages["conv-1"] = [
            StoredMessage(content="Quero cancelar", is_from_customer=True,
                          created_at=clock.advance(seconds=1), intent="complaint"),
            StoredMessage(content="Entendo", is_from_customer=False,
                          created_at=clock.advance(seconds=1)),
            StoredMessage(content="Falar com humano", is_from_customer=True,
                          created_at=clock.advance(seconds=1), intent="escalation_required"),
        ]

        context = await cache.get("+5511")

        assert [m.content for m in context.messages] == ["Quero cancelar", "Entendo", "Falar com humano"]
        assert [m.role for m in context.messages] == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER]
        assert context.recent_intents == ["escalation_required", "complaint"]
        assert context.conversation_state == ConversationState.ESCALATION
        assert context.needs_escalation
        assert not context.is_first_interaction
        assert context.total_messages == 42
        assert context.customer_name == "Ana"
        assert "cancelar" in context.topics

    async def test_store_failure_degrades_to_empty_context(self, cache_config, clock):
        cache = ConversationMemoryCache(BrokenStore(), config=cache_config, clock=clock)

        context = await cache.get("+5511", user_id="user-1")

        assert context.conversation_id == ""
        assert context.user_id == "user-1"
        assert context.is_first_interaction
        assert context.messages == []
        assert cache.metrics.get_counter("cache.hydration_failures") == 1

    async def test_concurrent_misses_hydrate_once(self, cache_config, clock):
        store = SlowCountingStore()
        cache = ConversationMemoryCache(store, config=cache_config, clock=clock)

        contexts = await asyncio.gather(*[cache.get("+5511") for _ in range(5)])

        assert store.lookups == 1
        assert store.creates == 1
        assert all(c is contexts[0] for c in contexts)

    async def test_hydration_respects_message_limit(self, cache, store, clock):
        store.conversations["+5511"] = StoredConversation(id="conv-1", customer_phone="+5511")
        store.messages["conv-1"] = [
            StoredMessage(content=f"m{i}", is_from_customer=True, created_at=clock.advance(seconds=1))
            for i in range(30)
        ]

        context = await cache.get("+5511")

        assert len(context.messages) == cache.config.max_messages_per_context
        assert context.messages[-1].content == "m29"
