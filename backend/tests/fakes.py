"""Test doubles for node handlers, LLM providers and HTTP responses."""

from typing import Any, Dict, List

import requests

from chainflow.engine.nodes.base import NodeHandler
from chainflow.services.llm.llm_service import LLMService
from chainflow.services.llm.models import LLMResponse, ToolCall, Usage


class RecordingHandler(NodeHandler):
    """Counts invocations and echoes its input with a marker."""

    def __init__(self, node_type: str = "record"):
        self.type = node_type
        self.calls: List[Any] = []

    def execute(self, node_data, input_data, context):
        self.calls.append(input_data)
        return {"recorded": True, "marker": node_data.get("marker"), "input": input_data}


class FailingHandler(NodeHandler):
    """Raises a transient error."""

    type = "explode"

    def execute(self, node_data, input_data, context):
        raise RuntimeError(node_data.get("message") or "boom")


class FakeLLMService(LLMService):
    """Replays scripted replies; the last reply repeats once the script runs out."""

    def __init__(self, replies: List[LLMResponse], provider: str = "openai", model: str = "gpt-test"):
        self.replies = list(replies)
        self.provider = provider
        self.model = model
        self.calls: List[Dict[str, Any]] = []

    def send_message(self, messages, tools=None, options=None):
        self.calls.append(
            {
                "messages": [message.model_copy(deep=True) for message in messages],
                "tools": list(tools or []),
                "options": options,
            }
        )
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


def text_reply(content: str) -> LLMResponse:
    return LLMResponse(content=content, finish_reason="stop", usage=Usage(input_tokens=10, output_tokens=5))


def tool_reply(*calls: ToolCall, content: str = "") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=list(calls),
        finish_reason="tool_use",
        usage=Usage(input_tokens=10, output_tokens=5),
    )


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = "", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        if headers is None:
            headers = {"content-type": "application/json" if json_data is not None else "text/plain"}
        self.headers = headers
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}", response=self)


class FakeConnections:
    """Connection manager that hands out one fixed engine."""

    def __init__(self, engine):
        self.engine = engine
        self.requests = []

    def get_engine(self, credential_id, user_id, vault):
        self.requests.append((credential_id, user_id))
        return self.engine
