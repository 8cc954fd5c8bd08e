"""Chat client — answers questions by driving the tool server."""

from notionchat.chat.orchestrator import ConversationOrchestrator

__all__ = ["ConversationOrchestrator"]
