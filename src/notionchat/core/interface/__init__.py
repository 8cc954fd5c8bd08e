"""Model interface — canonical messages and the LiteLLM-backed client."""

from notionchat.core.interface.client import ModelClient
from notionchat.core.interface.config import ModelConfig
from notionchat.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextContent,
    ToolCall,
)

__all__ = [
    "CanonicalMessage",
    "ConversationHistory",
    "ModelClient",
    "ModelConfig",
    "TextContent",
    "ToolCall",
]
