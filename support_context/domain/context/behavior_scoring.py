from typing import List, Optional, Sequence
from datetime import datetime, timedelta
import math

from support_context.domain.models.enrichment import RiskLevel
from support_context.domain.models.records import (
    InteractionRecord, SubscriptionRecord, TicketRecord, TicketStatus
)


RECENT_INTERACTION_WINDOW = timedelta(days=30)
FREQUENT_USER_THRESHOLD = 10
HIGH_VALUE_AGE = timedelta(days=6 * 30)
VIP_AGE = timedelta(days=365)
VIP_MONTHLY_VALUE = 200
RECENT_TICKET_WINDOW = 10
COMPLAINT_LOOKBACK = 10

OPEN_TICKET_STATUSES = {TicketStatus.OPEN, TicketStatus.IN_PROGRESS}
RESOLVED_TICKET_STATUSES = {TicketStatus.RESOLVED, TicketStatus.CLOSED}


def engagement_score(recent_interactions: int, executed_commands: int, total_messages: int) -> int:
    """Weighted activity score capped to 0..100"""

    raw = recent_interactions * 10 + executed_commands * 5 + total_messages * 2
    return max(0, min(100, round(raw)))


def count_recent_interactions(interactions: Sequence[InteractionRecord], now: datetime) -> int:
    cutoff = now - RECENT_INTERACTION_WINDOW
    return sum(1 for i in interactions if i.created_at >= cutoff)


def is_frequent_user(recent_interactions: int) -> bool:
    return recent_interactions >= FREQUENT_USER_THRESHOLD


def is_high_value(active_subscription: Optional[SubscriptionRecord], now: datetime) -> bool:
    if active_subscription is None:
        return False
    return now - active_subscription.start_date > HIGH_VALUE_AGE


def risk_level(interactions: Sequence[InteractionRecord], needs_escalation: bool) -> RiskLevel:
    """High on a recent complaint, medium when escalation is pending"""

    has_recent_complaint = any(
        i.intent and "complaint" in i.intent
        for i in interactions[:COMPLAINT_LOOKBACK]
    )
    if has_recent_complaint:
        return RiskLevel.HIGH
    if needs_escalation:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def days_until(target: datetime, now: datetime) -> int:
    return math.ceil((target - now).total_seconds() / 86400)


def average_resolution_hours(tickets: Sequence[TicketRecord]) -> Optional[float]:
    durations = [
        (t.resolved_at - t.created_at).total_seconds() / 3600
        for t in tickets
        if t.resolved_at is not None
    ]
    if not durations:
        return None
    return sum(durations) / len(durations)


def recent_ticket_categories(tickets: Sequence[TicketRecord]) -> List[str]:
    """Distinct categories of the newest tickets, newest first"""

    categories: List[str] = []
    for ticket in tickets[:RECENT_TICKET_WINDOW]:
        if ticket.category not in categories:
            categories.append(ticket.category)
    return categories


def is_vip(monthly_value: float, start_date: datetime, now: datetime) -> bool:
    return monthly_value > VIP_MONTHLY_VALUE or now - start_date > VIP_AGE
