# Conversation state is "the NOW" of a customer chat: the phase a support
# agent would say the conversation is in.

# greeting    no messages yet
# inquiry     customer is asking, or nothing more specific is known
# support     latest intent is a complaint
# resolution  latest intent says the problem is resolved, or thanks
# escalation  latest intent asks for a human
# idle        no intents and the last message is older than 30 minutes

from .state_classifier import classify_conversation_state, IDLE_AFTER

__all__ = ["classify_conversation_state", "IDLE_AFTER"]
