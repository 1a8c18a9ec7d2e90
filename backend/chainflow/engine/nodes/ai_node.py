"""
AI agent node.

Resolves the provider credential, wires the LLM adapter, tool service and
memory service into an ``AgentLoop`` and returns its output. Any error in
setup or during the loop is reported as a soft failure.
"""

from typing import Any, Callable, Dict, Optional

from chainflow.config.settings import get_settings
from chainflow.database.utils.enums import CredentialType
from chainflow.engine.context import ExecutionContext
from chainflow.engine.nodes.base import NodeHandler, require
from chainflow.services.llm.agent_loop import AgentConfig, AgentLoop
from chainflow.services.llm.ai_memory_service import AIMemoryService, MemoryConfig
from chainflow.services.llm.ai_tool_service import AIToolService
from chainflow.services.llm.llm_service import LLMService, get_llm_service

LLMServiceFactory = Callable[[str, str, Optional[str]], LLMService]


class AINodeHandler(NodeHandler):
    """
    Config: ``{credentialId, provider, modelName, systemPrompt, userGoal,
    temperature=0.7, maxTokens=2048, maxRetries, availableNodes,
    availableDBs, useUserDBForMemory, memoryTableName, memoryDBCredentialId}``.

    The credential payload is ``{apiKey, provider?, modelName?}``; node
    configuration wins over the credential.
    """

    type = "ai"

    def __init__(self, llm_service_factory: Optional[LLMServiceFactory] = None):
        self.llm_service_factory = llm_service_factory or get_llm_service

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        provider = node_data.get("provider")
        model_name = node_data.get("modelName")
        context.logger.info(f"ai: starting AI execution (provider: {provider}, model: {model_name})")

        try:
            settings = get_settings()
            credential_id = require(node_data, "credentialId")
            creds = context.credentials.resolve(credential_id, context.user_id, CredentialType.AI.value)
            provider = str(provider or creds.get("provider") or "openai").lower()
            model_name = model_name or creds.get("modelName")
            llm = self.llm_service_factory(provider, creds.get("apiKey"), model_name)
            model_name = llm.model
            context.logger.info(f"ai: using provider '{provider}' with model '{model_name}'")

            config = AgentConfig(
                system_prompt=node_data.get("systemPrompt") or AgentConfig.system_prompt,
                user_goal=node_data.get("userGoal") or "",
                temperature=float(node_data.get("temperature", 0.7)),
                max_tokens=int(node_data.get("maxTokens", 2048)),
                max_retries=int(node_data.get("maxRetries") or settings.ai_default_max_retries),
                available_nodes=node_data.get("availableNodes") or [],
                available_dbs=node_data.get("availableDBs") or [],
            )
            memory = AIMemoryService(context, MemoryConfig.from_node_data(node_data), settings)
            loop = AgentLoop(llm, context, config, tools=AIToolService(context), memory=memory)
            return loop.run(input_data)
        except Exception as e:
            context.logger.error(f"ai: error - {e}")
            return {"status": "error", "error": str(e), "provider": provider, "modelName": model_name}
