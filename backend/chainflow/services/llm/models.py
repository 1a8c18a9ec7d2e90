"""
Data models shared by the LLM adapter, the tool service and the agent loop.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "tool_use", "length", "error"]


class ToolCall(BaseModel):
    id: str
    name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """A function the model may call, described by a JSON schema."""

    name: str
    description: str
    parameters: Dict[str, Any]

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class AgentMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[Dict[str, Any]] = Field(default_factory=list)


class AgentConversation(BaseModel):
    """Messages of one AI node execution plus side results gathered across turns."""

    messages: List[AgentMessage] = Field(default_factory=list)
    node_outputs: Dict[str, Any] = Field(default_factory=dict)
    db_query_results: List[Any] = Field(default_factory=list)

    def add(self, role: str, content: str = "", **kwargs) -> AgentMessage:
        message = AgentMessage(role=role, content=content, **kwargs)
        self.messages.append(message)
        return message


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class LLMResponse(BaseModel):
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: FinishReason = "stop"
    usage: Usage = Field(default_factory=Usage)


class LLMOptions(BaseModel):
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: Optional[float] = None
