"""Conversation memory and context enrichment for a WhatsApp support agent."""

from support_context.application.bootstrap import build_context_manager
from support_context.domain.context.context_manager import ContextManager
from support_context.domain.context.memory.conversation_memory import ConversationMemory
from support_context.infrastructure.config.settings import MemoryCacheConfig, Settings

__version__ = "0.1.0"

__all__ = [
    "build_context_manager",
    "ContextManager",
    "ConversationMemory",
    "MemoryCacheConfig",
    "Settings",
]
