"""Conversation messages exchanged with the language model.

Only text content is needed: the chat client sends a system prompt and the
user's question, and reads back either text or proposed tool calls.
"""

import json
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class TextContent(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ToolCall(BaseModel):
    """A tool invocation proposed by an assistant message."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    arguments: dict[str, Any] = {}


class CanonicalMessage(BaseModel):
    """A single message in the conversation.

    Roles:
    - system: instruction/context messages
    - user: human input
    - assistant: model-generated messages (may include tool_calls)
    """

    role: Literal["system", "user", "assistant"]
    content: list[TextContent] = []
    tool_calls: list[ToolCall] | None = None
    metadata: dict[str, Any] = {}

    @property
    def text(self) -> str:
        """Concatenated text of all content parts."""
        return "".join(part.text for part in self.content)

    @classmethod
    def system(cls, text: str, **metadata: Any) -> "CanonicalMessage":
        return cls(role="system", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def user(cls, text: str, **metadata: Any) -> "CanonicalMessage":
        return cls(role="user", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: list[ToolCall] | None = None,
        **metadata: Any,
    ) -> "CanonicalMessage":
        content = [TextContent(text=text)] if text else []
        return cls(role="assistant", content=content, tool_calls=tool_calls, metadata=metadata)

    def to_openai(self) -> dict[str, Any]:
        """Render as an OpenAI chat message, the format LiteLLM accepts for every provider."""
        result: dict[str, Any] = {"role": self.role, "content": self.text or None}
        if self.tool_calls:
            result["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                }
                for tc in self.tool_calls
            ]
        return result


class ConversationHistory(BaseModel):
    """An ordered sequence of messages forming a conversation."""

    messages: list[CanonicalMessage] = []

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):  # type: ignore[override]
        return iter(self.messages)
