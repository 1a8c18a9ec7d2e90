"""
LLM provider adapter for Chainflow.

Every provider is reached through litellm, which speaks the OpenAI chat
completion shape for Claude- and OpenAI-style backends alike. The adapter
normalises the reply into ``LLMResponse`` so the agent loop never sees a
provider-specific payload.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import litellm

from chainflow.engine.errors import ConfigurationError
from chainflow.services.llm.models import (
    AgentMessage,
    LLMOptions,
    LLMResponse,
    ToolCall,
    ToolDefinition,
    Usage,
)

logger = logging.getLogger(__name__)

# litellm routing prefix per provider
PROVIDER_PREFIXES = {
    "anthropic": "anthropic",
    "openai": "openai",
    "openrouter": "openrouter",
    "groq": "groq",
    "together": "together_ai",
}

DEFAULT_MODELS = {
    "anthropic": "claude-3-5-sonnet-latest",
    "openai": "gpt-3.5-turbo",
    "openrouter": "anthropic/claude-3.5-sonnet",
    "groq": "llama-3.1-70b-versatile",
    "together": "meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo",
}

_FINISH_REASONS = {
    "stop": "stop",
    "end_turn": "stop",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "tool_use": "tool_use",
    "length": "length",
    "max_tokens": "length",
}


def default_model(provider: str) -> str:
    return DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openai"])


class LLMService(ABC):
    """Uniform ``send_message(messages, tools, options)`` contract."""

    provider: str = ""
    model: str = ""

    @abstractmethod
    def send_message(
        self,
        messages: List[AgentMessage],
        tools: Optional[List[ToolDefinition]] = None,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        """Send the whole conversation and return the normalised reply."""


def _to_chat_message(message: AgentMessage) -> Dict[str, str]:
    # Tool traffic is carried as plain text so every provider accepts the history.
    content = message.content or ""
    if message.tool_calls:
        calls = [{"name": call.name, "parameters": call.parameters} for call in message.tool_calls]
        content = f"{content}\n\nTool calls:\n{json.dumps(calls, default=str)}".strip()
    if message.tool_results:
        content = f"{content}\n\nTool results:\n{json.dumps(message.tool_results, default=str)}".strip()
    return {"role": message.role, "content": content}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Could not decode tool arguments: {raw!r}")
        return {}
    return parsed if isinstance(parsed, dict) else {"input": parsed}


def parse_completion(response: Any) -> LLMResponse:
    """Convert a litellm ``ModelResponse`` (or its dict form) into ``LLMResponse``."""
    choices = _field(response, "choices") or []
    if not choices:
        return LLMResponse(content="", finish_reason="error")
    choice = choices[0]
    message = _field(choice, "message")

    tool_calls = []
    for index, raw_call in enumerate(_field(message, "tool_calls") or []):
        function = _field(raw_call, "function")
        tool_calls.append(
            ToolCall(
                id=_field(raw_call, "id") or f"call_{index}",
                name=_field(function, "name", ""),
                parameters=_parse_arguments(_field(function, "arguments")),
            )
        )

    finish_reason = _FINISH_REASONS.get(_field(choice, "finish_reason") or "", "stop")
    if tool_calls and finish_reason == "stop":
        finish_reason = "tool_use"

    usage = _field(response, "usage")
    return LLMResponse(
        content=_field(message, "content") or "",
        tool_calls=tool_calls,
        finish_reason=finish_reason,
        usage=Usage(
            input_tokens=_field(usage, "prompt_tokens", 0) or 0,
            output_tokens=_field(usage, "completion_tokens", 0) or 0,
        ),
    )


class LiteLLMService(LLMService):
    """LLM service backed by ``litellm.completion``."""

    def __init__(self, provider: str, api_key: str, model: Optional[str] = None):
        provider = (provider or "openai").lower()
        if provider not in PROVIDER_PREFIXES:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}")
        if not api_key:
            raise ConfigurationError(f"An API key is required for provider '{provider}'")
        self.provider = provider
        self.api_key = api_key
        self.model = model or default_model(provider)

    @property
    def litellm_model(self) -> str:
        return f"{PROVIDER_PREFIXES[self.provider]}/{self.model}"

    def send_message(
        self,
        messages: List[AgentMessage],
        tools: Optional[List[ToolDefinition]] = None,
        options: Optional[LLMOptions] = None,
    ) -> LLMResponse:
        options = options or LLMOptions()
        params: Dict[str, Any] = {
            "model": self.litellm_model,
            "messages": [_to_chat_message(message) for message in messages],
            "api_key": self.api_key,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if tools:
            params["tools"] = [tool.to_openai() for tool in tools]
        if options.timeout:
            params["timeout"] = options.timeout

        logger.debug(f"Calling {self.litellm_model} with {len(messages)} messages")
        response = litellm.completion(**params)
        return parse_completion(response)


def get_llm_service(provider: str, api_key: str, model: Optional[str] = None) -> LLMService:
    """Create the adapter for ``provider``."""
    return LiteLLMService(provider, api_key, model)
