"""Session management: conversation state, compaction, context accounting."""

from conduit.session.compaction import ConversationCompactor
from conduit.session.context import context_usage, context_window
from conduit.session.session import Conversation

__all__ = [
    "Conversation",
    "ConversationCompactor",
    "context_usage",
    "context_window",
]
