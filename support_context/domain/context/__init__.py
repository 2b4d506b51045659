# This module handles conversation memory and context enrichment

# +---------------------+
# |      Memory         |   (Per customer, bounded, cached)
# |---------------------|
# | Recent messages     |
# | Recent intents      |
# | Sentiment, topics   |
# | Write-once summary  |
# +---------------------+

# +---------------------+
# |   Account data      |   (External, fetched per request)
# |---------------------|
# | User, subscription  |
# | Support tickets     |
# | Interactions        |
# | Active session      |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |       Enriched context       |   (Rebuilt on every request)
# |------------------------------|
# | Conversation state           |
# | Behavior scores, risk        |
# | Flags (VIP, overdue, ...)    |
# | Text synopsis for prompts    |
# +------------------------------+
#         |
#         v
#   [LLM / rule engine]

from .context_manager import ContextManager
from .memory.cache_memory_store import ConversationMemoryCache
from .memory.conversation_memory import ConversationMemory
from .topic_extractor import FrequencyTopicExtractor, TopicExtractor

__all__ = [
    "ContextManager",
    "ConversationMemory",
    "ConversationMemoryCache",
    "FrequencyTopicExtractor",
    "TopicExtractor",
]
