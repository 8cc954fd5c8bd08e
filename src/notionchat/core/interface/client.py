"""ModelClient — unified async interface to LLMs via LiteLLM.

The language model is a collaborator: given the conversation and the tool
schemas discovered from the tool server, it either proposes tool calls or
answers in text.  LiteLLM keeps the provider swappable.
"""

import json
from typing import Any

import litellm

from notionchat.core.interface.config import ModelConfig
from notionchat.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextContent,
    ToolCall,
)
from notionchat.utils.telemetry import (
    ATTR_FINISH_REASON,
    ATTR_MODEL,
    ATTR_PROVIDER,
    ATTR_TOKENS_COMPLETION,
    ATTR_TOKENS_PROMPT,
    ATTR_TOKENS_TOTAL,
    get_tracer,
)

_tracer = get_tracer(__name__)


class ModelClient:
    """Async client for generating LLM responses via LiteLLM.

    Usage::

        config = ModelConfig(model="openai/o3-mini")
        client = ModelClient(config)
        response = await client.generate(history, tools=schemas)
    """

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    async def generate(
        self,
        messages: ConversationHistory,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> CanonicalMessage:
        """Generate a response from the configured model.

        Args:
            messages: The conversation so far.
            tools: Optional tool definitions in OpenAI function schema format.
            **kwargs: Additional parameters passed to LiteLLM (e.g. ``tool_choice``).

        Returns:
            The assistant message, carrying text and/or proposed tool calls.
        """
        with _tracer.start_as_current_span("model.generate") as span:
            span.set_attribute(ATTR_MODEL, self.config.model)
            span.set_attribute(ATTR_PROVIDER, self.config.provider)

            call_kwargs: dict[str, Any] = {
                "model": self.config.model,
                "messages": [message.to_openai() for message in messages],
                **self.config.extra,
                **kwargs,
            }

            if self.config.api_key:
                call_kwargs["api_key"] = self.config.api_key
            if self.config.api_base:
                call_kwargs["api_base"] = self.config.api_base

            if tools:
                call_kwargs["tools"] = tools
            else:
                call_kwargs.pop("tool_choice", None)

            # LiteLLM's type stubs are incomplete
            response = await litellm.acompletion(**call_kwargs)  # pyright: ignore[reportUnknownMemberType]

            result = self._parse_response(response)

            usage: dict[str, Any] | None = result.metadata.get("usage")
            if isinstance(usage, dict):
                span.set_attribute(ATTR_TOKENS_PROMPT, int(usage.get("prompt_tokens", 0)))
                span.set_attribute(ATTR_TOKENS_COMPLETION, int(usage.get("completion_tokens", 0)))
                span.set_attribute(ATTR_TOKENS_TOTAL, int(usage.get("total_tokens", 0)))
            finish_reason = result.metadata.get("finish_reason")
            if finish_reason is not None:
                span.set_attribute(ATTR_FINISH_REASON, str(finish_reason))

            return result

    async def complete(self, system: str, user: str, **kwargs: Any) -> str:
        """One-shot text completion for a system prompt and a user message."""
        history = ConversationHistory(
            messages=[CanonicalMessage.system(system), CanonicalMessage.user(user)]
        )
        response = await self.generate(history, **kwargs)
        return response.text

    def _parse_response(self, response: Any) -> CanonicalMessage:
        """Convert a LiteLLM response to a CanonicalMessage.

        LiteLLM returns OpenAI-compatible response objects regardless of
        the underlying provider.
        """
        message = response.choices[0].message

        content: list[TextContent] = []
        if message.content:
            content = [TextContent(text=message.content)]

        tool_calls: list[ToolCall] | None = None
        if message.tool_calls:
            tool_calls = [
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=_parse_arguments(tc.function.arguments),
                )
                for tc in message.tool_calls
            ]

        metadata: dict[str, Any] = {}
        if getattr(response, "usage", None):
            metadata["usage"] = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        metadata["finish_reason"] = response.choices[0].finish_reason
        metadata["model"] = response.model

        return CanonicalMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls,
            metadata=metadata,
        )


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    """Parse JSON string arguments from a tool call."""
    if not raw:
        return {}
    try:
        result: Any = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"raw": raw}
    if not isinstance(result, dict):
        return {"raw": raw}
    return result
