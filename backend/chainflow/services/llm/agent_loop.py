"""
Agent Loop.

Bounded multi-turn tool-calling protocol behind the AI node. The loop is an
explicit state machine:

- DRAFTING builds the system and user messages (memory spliced in) and the
  tool catalogue.
- TURN sends the whole conversation to the model once. A ``stop`` reply or a
  reply without tool calls ends the loop; tool calls are executed in order and
  their results fed back as the next user message.
- DONE persists a memory snapshot and produces the node output.

The number of TURN steps never exceeds ``max_retries``; when the bound is hit
the last reply is returned as the result.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from chainflow.engine.context import ExecutionContext
from chainflow.services.llm.ai_memory_service import AIMemoryService
from chainflow.services.llm.ai_tool_service import DB_TOOL_PREFIX, NODE_TOOL_PREFIX, AIToolService
from chainflow.services.llm.llm_service import LLMService
from chainflow.services.llm.models import AgentConversation, LLMOptions, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class AgentState(str, enum.Enum):
    DRAFTING = "DRAFTING"
    TURN = "TURN"
    DONE = "DONE"


@dataclass
class AgentConfig:
    system_prompt: str = "You are a helpful assistant."
    user_goal: str = ""
    temperature: float = 0.7
    max_tokens: int = 2048
    max_retries: int = 5
    available_nodes: List[Any] = field(default_factory=list)
    available_dbs: List[Any] = field(default_factory=list)


class AgentLoop:
    def __init__(
        self,
        llm: LLMService,
        context: ExecutionContext,
        config: AgentConfig,
        tools: Optional[AIToolService] = None,
        memory: Optional[AIMemoryService] = None,
    ):
        self.llm = llm
        self.context = context
        self.config = config
        self.tools = tools or AIToolService(context)
        self.memory = memory
        self.state = AgentState.DRAFTING
        self.turns = 0
        self.tools_used = 0
        self.db_queries_run = 0
        self.input_tokens = 0
        self.output_tokens = 0

    def run(self, input_data: Any) -> Dict[str, Any]:
        """
        Drive the conversation to completion.

        Returns:
            ``{response, toolsUsed, dbQueriesRun, tokensUsed, nodeOutputs,
            conversationLength}``, or ``{status: 'cancelled', ...}`` when the
            run was cancelled between turns.
        """
        conversation = self._draft(input_data)
        tool_definitions = self.tools.build_tools(self.config.available_nodes, self.config.available_dbs)
        options = LLMOptions(
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            timeout=self.context.http_timeout,
        )
        max_turns = max(int(self.config.max_retries), 1)
        response: Optional[LLMResponse] = None

        self.state = AgentState.TURN
        while self.state is AgentState.TURN:
            if self.turns >= max_turns:
                self.context.logger.warning(f"ai: reached max turns ({max_turns}) without a stop")
                self.state = AgentState.DONE
                break

            if self.context.is_cancelled():
                self.context.logger.info("ai: run cancelled, stopping agent loop")
                return {"status": "cancelled", **self._summary(conversation, response)}

            self.turns += 1
            self.context.logger.info(
                f"ai: turn {self.turns}/{max_turns} with {len(tool_definitions)} tools"
            )
            response = self.llm.send_message(conversation.messages, tool_definitions or None, options)
            self.input_tokens += response.usage.input_tokens
            self.output_tokens += response.usage.output_tokens

            if response.finish_reason == "stop" or not response.tool_calls:
                conversation.add("assistant", response.content)
                self.state = AgentState.DONE
                break

            results = [self._run_tool(call, conversation) for call in response.tool_calls]
            conversation.add("assistant", response.content, tool_calls=response.tool_calls)
            conversation.add("user", "Tool results:", tool_results=results)

        self._remember(conversation, response)
        self.context.logger.info(
            f"ai: execution complete ({self.input_tokens} input tokens, {self.output_tokens} output tokens)"
        )
        return {"status": "success", **self._summary(conversation, response)}

    def _draft(self, input_data: Any) -> AgentConversation:
        memories = self.memory.load() if self.memory is not None else []
        system_prompt = self.config.system_prompt
        if memories:
            system_prompt = (
                f"{system_prompt}\n\n### Previous Context:\n{json.dumps(memories, indent=2, default=str)}"
            )

        conversation = AgentConversation()
        conversation.add("system", system_prompt)
        conversation.add(
            "user",
            f"Input data:\n{json.dumps(input_data, indent=2, default=str)}\n\n### Task:\n{self.config.user_goal}",
        )
        return conversation

    def _run_tool(self, call: ToolCall, conversation: AgentConversation) -> Dict[str, Any]:
        self.tools_used += 1
        if call.name.startswith(DB_TOOL_PREFIX):
            self.db_queries_run += 1
        try:
            result = self.tools.execute_tool(call)
        except Exception as e:
            self.context.logger.warning(f"ai: tool {call.name} failed: {e}")
            return {"toolCallId": call.id, "tool": call.name, "success": False, "error": str(e)}

        if call.name.startswith(NODE_TOOL_PREFIX):
            conversation.node_outputs[call.name[len(NODE_TOOL_PREFIX):]] = result
        elif call.name.startswith(DB_TOOL_PREFIX):
            conversation.db_query_results.append(result)
        return {"toolCallId": call.id, "tool": call.name, "success": True, "result": result}

    def _remember(self, conversation: AgentConversation, response: Optional[LLMResponse]) -> None:
        if self.memory is None:
            return
        self.memory.save(
            {
                "conversation": [
                    {"role": message.role, "content": message.content} for message in conversation.messages
                ],
                "metadata": {
                    "provider": self.llm.provider,
                    "model": self.llm.model,
                    "nodeOutputs": conversation.node_outputs,
                    "dbQueryResults": conversation.db_query_results,
                },
                "finalResponse": response.content if response else "",
            }
        )

    def _summary(self, conversation: AgentConversation, response: Optional[LLMResponse]) -> Dict[str, Any]:
        return {
            "response": response.content if response else "",
            "provider": self.llm.provider,
            "model": self.llm.model,
            "turns": self.turns,
            "toolsUsed": self.tools_used,
            "dbQueriesRun": self.db_queries_run,
            "tokensUsed": {"input": self.input_tokens, "output": self.output_tokens},
            "nodeOutputs": conversation.node_outputs,
            "conversationLength": len(conversation.messages),
        }
