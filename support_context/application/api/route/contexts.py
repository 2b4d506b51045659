from typing import Annotated, Any, Dict, List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from support_context.domain.context.context_manager import ContextManager
from support_context.domain.models.conversation import (
    ConversationContext, Message, MessageMetadata, MessageRole, Sentiment
)
from support_context.domain.models.enrichment import EnrichedContext, EnrichmentDepth, EnrichmentOptions

router = APIRouter(prefix="/contexts", tags=["contexts"])


def get_context_manager(request: Request) -> ContextManager:
    return request.app.state.context_manager


ContextManagerDep = Annotated[ContextManager, Depends(get_context_manager)]


class MessageRequest(BaseModel):
    """Inbound message to append to a conversation"""
    role: MessageRole = MessageRole.USER
    content: str
    timestamp: Optional[datetime] = None
    intent: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    metadata: Optional[MessageMetadata] = None
    persist: bool = True


class EnrichedContextResponse(BaseModel):
    context: EnrichedContext
    llm_context: str


class HistoryItem(BaseModel):
    role: str
    content: str


class SummaryResponse(BaseModel):
    phone: str
    summary: str
    topics: List[str] = Field(default_factory=list)


@router.get("/stats")
async def cache_stats(manager: ContextManagerDep) -> Dict[str, Any]:
    """Cache occupancy and service counters"""
    return await manager.get_stats()


@router.get("/{phone}", response_model=ConversationContext)
async def get_context(phone: str, manager: ContextManagerDep, user_id: Optional[str] = None):
    return await manager.get_context(phone, user_id)


@router.post("/{phone}/messages", response_model=ConversationContext)
async def add_message(phone: str, request: MessageRequest, manager: ContextManagerDep):
    message_data = request.model_dump(exclude={"persist", "timestamp"})
    if request.timestamp is not None:
        message_data["timestamp"] = request.timestamp
    else:
        message_data["timestamp"] = manager.clock()

    return await manager.add_message(phone, Message(**message_data), persist=request.persist)


@router.get("/{phone}/history", response_model=List[HistoryItem])
async def get_history(phone: str, manager: ContextManagerDep, limit: int = Query(10, ge=1, le=500)):
    return await manager.get_formatted_history(phone, limit)


@router.get("/{phone}/summary", response_model=SummaryResponse)
async def get_summary(phone: str, manager: ContextManagerDep, refresh_topics: bool = True):
    """Conversation summary and topics.

    With refresh_topics (the default) the topics are recomputed and written
    back to the cached context; otherwise the cached topics are returned.
    """
    summary = await manager.get_conversation_summary(phone)
    if refresh_topics:
        topics = await manager.memory.extract_topics(phone)
    else:
        topics = (await manager.get_context(phone)).topics
    return SummaryResponse(phone=phone, summary=summary, topics=topics)


@router.get("/{phone}/enriched", response_model=EnrichedContextResponse)
async def get_enriched(
    phone: str,
    manager: ContextManagerDep,
    user_id: Optional[str] = None,
    depth: EnrichmentDepth = EnrichmentDepth.STANDARD,
    include_subscription: bool = True,
    include_support_history: bool = True,
    include_behavior_analysis: bool = True,
    include_session_data: bool = True
):
    options = EnrichmentOptions(
        include_subscription=include_subscription,
        include_support_history=include_support_history,
        include_behavior_analysis=include_behavior_analysis,
        include_session_data=include_session_data,
        depth=depth
    )
    enriched = await manager.get_enriched_context(phone, user_id, options)
    return EnrichedContextResponse(
        context=enriched,
        llm_context=manager.generate_llm_context(enriched)
    )


@router.delete("/{phone}", status_code=204)
async def clear_context(phone: str, manager: ContextManagerDep) -> None:
    await manager.clear_context(phone)


@router.delete("", status_code=204)
async def clear_all_contexts(manager: ContextManagerDep) -> None:
    await manager.memory.clear_all_contexts()
