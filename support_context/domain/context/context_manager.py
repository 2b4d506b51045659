from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
import asyncio
import time
from datetime import datetime
import structlog

from support_context.domain.models.conversation import ConversationContext, Message, ensure_utc
from support_context.domain.models.enrichment import (
    BehaviorProfile,
    ContextFlags,
    EnrichedContext,
    EnrichmentDepth,
    EnrichmentMetadata,
    EnrichmentOptions,
    SessionInfo,
    SubscriptionInfo,
    SupportHistory,
    UserProfile,
)
from support_context.domain.models.records import SubscriptionStatus
from support_context.infrastructure.config.settings import EnrichmentSettings
from support_context.infrastructure.observability.logging import ContextLogger
from support_context.infrastructure.persistence.interfaces import (
    InteractionQuery,
    SessionStore,
    SubscriptionQuery,
    TicketQuery,
    UserDirectory,
)
from . import behavior_scoring as scoring
from .memory.conversation_memory import ConversationMemory

logger = structlog.get_logger(__name__)
context_logger = ContextLogger(__name__)

T = TypeVar("T")


class ContextManager:
    """Assembles an enriched context from conversation memory and account data.

    Every section other than the conversation itself is fetched with its own
    timeout. A failing or slow section is logged and replaced by its default
    so enrichment always returns.
    """

    def __init__(
        self,
        memory: ConversationMemory,
        users: UserDirectory,
        subscriptions: SubscriptionQuery,
        tickets: TicketQuery,
        interactions: InteractionQuery,
        sessions: SessionStore,
        settings: Optional[EnrichmentSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.memory = memory
        self.users = users
        self.subscriptions = subscriptions
        self.tickets = tickets
        self.interactions = interactions
        self.sessions = sessions
        self.settings = settings or EnrichmentSettings()
        self.clock = clock or memory.clock
        self.metrics = memory.metrics

    async def get_enriched_context(
        self,
        phone: str,
        user_id: Optional[str] = None,
        options: Optional[EnrichmentOptions] = None
    ) -> EnrichedContext:
        """Build the enriched context for a customer; never raises"""

        opts = options or EnrichmentOptions()
        started = time.perf_counter()
        degraded: List[str] = []

        try:
            conversation = await self.memory.get_context(phone, user_id)
        except Exception as e:
            logger.error("Error getting enriched context", phone=phone, error=str(e))
            return await self._get_minimal_context(phone, user_id)

        logger.info("Building enriched context", phone=phone, depth=opts.depth.value)

        if opts.depth == EnrichmentDepth.DEEP:
            topics = await self._fetch(
                "topics", phone, degraded,
                lambda: self.memory.extract_topics(phone),
                conversation.topics
            )
            conversation = conversation.model_copy(update={"topics": topics})

        user = await self._fetch(
            "user", phone, degraded,
            lambda: self._get_user(phone, user_id),
            None
        )

        basic = opts.depth == EnrichmentDepth.BASIC
        now = ensure_utc(self.clock())

        subscription = None
        if opts.include_subscription and user:
            subscription = await self._fetch(
                "subscription", phone, degraded,
                lambda: self._get_subscription(user.id, now),
                None
            )

        support_history = SupportHistory()
        if opts.include_support_history and user and not basic:
            support_history = await self._fetch(
                "support_history", phone, degraded,
                lambda: self._get_support_history(user.id),
                SupportHistory()
            )

        behavior = BehaviorProfile(last_interaction_date=now)
        if opts.include_behavior_analysis and user and not basic:
            behavior = await self._fetch(
                "behavior", phone, degraded,
                lambda: self._analyze_behavior(user.id, conversation, now),
                BehaviorProfile(last_interaction_date=now)
            )

        session = None
        if opts.include_session_data and user and not basic:
            session = await self._fetch(
                "session", phone, degraded,
                lambda: self._get_session(user.id, phone),
                None
            )

        try:
            flags = self._calculate_flags(user, subscription, support_history, conversation, now)
        except Exception as e:
            logger.error("Error calculating context flags", phone=phone, error=str(e))
            self.metrics.increment_counter("enrichment.degraded_sections")
            degraded.append("flags")
            flags = ContextFlags(is_first_time_user=user is None or conversation.is_first_interaction)

        self.metrics.record_latency("enrichment", (time.perf_counter() - started) * 1000)

        return EnrichedContext(
            conversation=conversation,
            user=user,
            subscription=subscription,
            support_history=support_history,
            behavior=behavior,
            session=session,
            flags=flags,
            metadata=EnrichmentMetadata(
                language=self.settings.language,
                depth=opts.depth,
                degraded_sections=degraded,
                generated_at=now
            )
        )

    async def _fetch(
        self,
        section: str,
        phone: str,
        degraded: List[str],
        fetch: Callable[[], Awaitable[T]],
        default: T
    ) -> T:
        """Run one section fetch under the configured timeout, falling back to default"""

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(fetch(), timeout=self.settings.fetch_timeout_seconds)
        except asyncio.TimeoutError:
            error = f"timed out after {self.settings.fetch_timeout_seconds}s"
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            context_logger.log_enrichment_section(
                phone, section, duration_ms=(time.perf_counter() - started) * 1000
            )
            return result

        logger.error("Error fetching enrichment section", section=section, phone=phone, error=error)
        context_logger.log_enrichment_section(phone, section, success=False, error=error)
        self.metrics.increment_counter("enrichment.degraded_sections")
        degraded.append(section)
        return default

    async def _get_user(self, phone: str, user_id: Optional[str]) -> Optional[UserProfile]:
        if user_id:
            record = await self.users.find_user_by_id(user_id)
        else:
            record = await self.users.find_user_by_phone(phone)

        if record is None:
            return None

        return UserProfile(
            id=record.id,
            name=record.name or "Cliente",
            email=record.email,
            phone=record.phone or phone,
            whatsapp=record.whatsapp,
            created_at=record.created_at,
            last_login_at=record.last_login_at
        )

    async def _get_subscription(self, user_id: str, now: datetime) -> Optional[SubscriptionInfo]:
        record = await self.subscriptions.find_active_or_overdue_subscription(user_id)
        if record is None:
            return None

        return SubscriptionInfo(
            id=record.id,
            plan_type=record.plan_type,
            status=record.status.value,
            monthly_value=record.monthly_value,
            renewal_date=record.renewal_date,
            start_date=record.start_date,
            next_billing_date=record.next_billing_date,
            days_until_renewal=scoring.days_until(record.renewal_date, now),
            is_overdue=record.status == SubscriptionStatus.OVERDUE
        )

    async def _get_support_history(self, user_id: str) -> SupportHistory:
        tickets = await self.tickets.list_tickets(user_id, limit=self.settings.ticket_limit)
        if not tickets:
            return SupportHistory()

        return SupportHistory(
            total_tickets=len(tickets),
            open_tickets=sum(1 for t in tickets if t.status in scoring.OPEN_TICKET_STATUSES),
            resolved_tickets=sum(1 for t in tickets if t.status in scoring.RESOLVED_TICKET_STATUSES),
            average_resolution_time=scoring.average_resolution_hours(tickets),
            last_ticket_date=tickets[0].created_at,
            recent_ticket_categories=scoring.recent_ticket_categories(tickets)
        )

    async def _analyze_behavior(
        self,
        user_id: str,
        conversation: ConversationContext,
        now: datetime
    ) -> BehaviorProfile:
        interactions = await self.interactions.list_interactions(
            user_id, limit=self.settings.interaction_limit
        )
        recent = scoring.count_recent_interactions(interactions, now)
        active_subscription = await self.subscriptions.find_active_subscription(user_id)

        return BehaviorProfile(
            total_interactions=len(interactions),
            preferred_channel="whatsapp",
            last_interaction_date=interactions[0].created_at if interactions else now,
            engagement_score=scoring.engagement_score(
                recent,
                len(conversation.executed_commands),
                conversation.total_messages
            ),
            is_frequent_user=scoring.is_frequent_user(recent),
            is_high_value=scoring.is_high_value(active_subscription, now),
            risk_level=scoring.risk_level(interactions, conversation.needs_escalation)
        )

    async def _get_session(self, user_id: str, phone: str) -> Optional[SessionInfo]:
        record = await self.sessions.find_active_session(user_id, phone)
        if record is None:
            return None

        return SessionInfo(
            session_id=record.session_token,
            started_at=record.created_at,
            expires_at=record.expires_at,
            commands_executed=record.commands_executed,
            is_authenticated=True
        )

    def _calculate_flags(
        self,
        user: Optional[UserProfile],
        subscription: Optional[SubscriptionInfo],
        support_history: SupportHistory,
        conversation: ConversationContext,
        now: datetime
    ) -> ContextFlags:
        return ContextFlags(
            is_first_time_user=user is None or conversation.is_first_interaction,
            has_active_subscription=subscription is not None and subscription.status == SubscriptionStatus.ACTIVE.value,
            has_overdue_payment=subscription is not None and subscription.is_overdue,
            has_recent_complaint=any("complaint" in intent for intent in conversation.recent_intents),
            needs_attention=conversation.needs_escalation or support_history.open_tickets > 0,
            is_vip=subscription is not None and scoring.is_vip(
                subscription.monthly_value, subscription.start_date, now
            )
        )

    async def _get_minimal_context(self, phone: str, user_id: Optional[str]) -> EnrichedContext:
        try:
            conversation = await self.memory.get_context(phone, user_id)
        except Exception as e:
            logger.error("Error loading minimal context", phone=phone, error=str(e))
            conversation = ConversationContext.empty(phone, user_id)

        return EnrichedContext(
            conversation=conversation,
            support_history=SupportHistory(),
            behavior=BehaviorProfile(last_interaction_date=self.clock()),
            flags=ContextFlags(),
            metadata=EnrichmentMetadata(
                language=self.settings.language,
                degraded_sections=["conversation"]
            )
        )

    def generate_llm_context(self, enriched: EnrichedContext) -> str:
        """Render the enriched context as one fact per line for a prompt.

        Line order is fixed; downstream prompts rely on it.
        """

        parts: List[str] = []

        if enriched.user:
            parts.append(f"Cliente: {enriched.user.name}")
            parts.append(f"Telefone: {enriched.user.phone}")

        if enriched.subscription:
            parts.append(f"Assinatura: {enriched.subscription.plan_type}")
            parts.append(f"Status: {enriched.subscription.status}")
            parts.append(f"Renovação em: {enriched.subscription.days_until_renewal} dias")

        history = enriched.support_history
        if history.total_tickets > 0:
            parts.append(f"Tickets: {history.total_tickets} total, {history.open_tickets} abertos")

        if enriched.behavior.is_frequent_user:
            parts.append("Cliente frequente")
        if enriched.behavior.is_high_value:
            parts.append("Cliente de alto valor")

        if enriched.flags.is_vip:
            parts.append("⭐ Cliente VIP")
        if enriched.flags.has_overdue_payment:
            parts.append("⚠️ Pagamento em atraso")
        if enriched.flags.needs_attention:
            parts.append("⚠️ Necessita atenção especial")

        parts.append(f"Estado da conversa: {enriched.conversation.conversation_state.value}")
        parts.append(f"Sentimento: {enriched.conversation.dominant_sentiment.value}")

        if enriched.conversation.summary:
            parts.append(f"Resumo: {enriched.conversation.summary}")

        return "\n".join(parts)

    # Pass-throughs so callers only need the context manager

    async def get_context(self, phone: str, user_id: Optional[str] = None) -> ConversationContext:
        return await self.memory.get_context(phone, user_id)

    async def add_message(self, phone: str, message: Message, persist: bool = True) -> ConversationContext:
        return await self.memory.add_message(phone, message, persist=persist)

    async def record_message(self, phone: str, content: str, **kwargs) -> ConversationContext:
        context = await self.memory.record_message(phone, content, **kwargs)
        logger.debug(
            "Message added to context",
            phone=phone,
            role=kwargs.get("role", "user"),
            intent=kwargs.get("intent"),
            content_length=len(content)
        )
        return context

    async def get_formatted_history(self, phone: str, limit: int = 10) -> List[Dict[str, str]]:
        return await self.memory.get_formatted_history(phone, limit)

    async def get_conversation_summary(self, phone: str) -> str:
        return await self.memory.get_conversation_summary(phone)

    async def clear_context(self, phone: str) -> None:
        await self.memory.clear_context(phone)

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "memory_cache": await self.memory.get_cache_stats(),
            "metrics": self.metrics.get_metrics_summary()
        }
