"""
Run Lifecycle Executor.

Drives one run: moves it to RUNNING, executes the flow's nodes strictly in
array order, persists one output record per executed node and finalises the
run as COMPLETED or FAILED. Connections drawn between nodes are not consulted;
the node list is a linear pipeline where each output is the next node's input.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from chainflow.config.logging_config import get_run_logger
from chainflow.config.settings import Settings, get_settings
from chainflow.database.repositories.flows_repository import FlowsRepository
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.database.utils.enums import RunStatus
from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import (
    ConfigurationError,
    FlowNotFoundError,
    RunNotFoundError,
    RunStateError,
)
from chainflow.engine.registry import NodeRegistry, get_registry
from chainflow.services.connection_manager import ConnectionManager
from chainflow.services.credential_service import CredentialService

logger = logging.getLogger(__name__)

_EXECUTABLE_STATUSES = (RunStatus.QUEUED, RunStatus.RUNNING)


class FlowExecutor:
    """Executes runs against a database session."""

    def __init__(
        self,
        session: Session,
        registry: Optional[NodeRegistry] = None,
        connections: Optional[ConnectionManager] = None,
        credentials: Optional[CredentialService] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.registry = registry or get_registry()
        self.connections = connections or ConnectionManager()
        self.credentials = credentials or CredentialService(session)
        self.settings = settings or get_settings()
        self.runs = RunsRepository(session)
        self.flows = FlowsRepository(session)

    def execute(self, run_id: str) -> Dict[str, Any]:
        """
        Execute a run end to end.

        Args:
            run_id: The run to execute.

        Returns:
            The aggregate result ``{completed, nodeCount, results}``, or
            ``{cancelled: True, ...}`` when the run was cancelled.

        Raises:
            RunNotFoundError: If the run does not exist.
            RunStateError: If the run is not QUEUED or RUNNING.
            FlowNotFoundError: If the run's flow no longer exists.
            Exception: Whatever a node raised, after the run was marked FAILED.
        """
        run = self.runs.get_run(run_id)
        if run is None:
            logger.error(f"Run {run_id} not found; dropping execution")
            raise RunNotFoundError(run_id)

        status = RunStatus(run.status)
        if status not in _EXECUTABLE_STATUSES:
            raise RunStateError(f"Run {run_id} is already {status.value}; refusing to execute it again")

        run = self.runs.update_status(run_id, RunStatus.RUNNING)
        run_logger = get_run_logger(run_id)

        flow = self.flows.get_flow(run.flow_id)
        if flow is None:
            error = FlowNotFoundError(run.flow_id)
            logger.error(f"Run {run_id} references missing flow {run.flow_id}")
            self._mark_failed(run_id, str(error))
            raise error

        nodes: List[Dict[str, Any]] = list(flow.nodes or [])
        node_outputs: Dict[str, Any] = {}
        results: List[Dict[str, Any]] = []

        # A redelivered RUNNING run resumes after its last persisted success.
        completed = {
            record.node_id: record.output
            for record in self.runs.get_node_outputs(run_id)
            if record.error is None
        }
        if completed:
            run_logger.info(f"Resuming run with {len(completed)} node(s) already executed")

        context = ExecutionContext(
            run_id=run_id,
            flow_id=flow.id,
            user_id=run.user_id,
            logger=run_logger,
            flow_nodes=nodes,
            node_outputs=MappingProxyType(node_outputs),
            db=self.session,
            credentials=self.credentials,
            connections=self.connections,
            registry=self.registry,
            rpc_url=self.settings.solana_rpc_url,
            http_timeout=self.settings.http_timeout_seconds,
            is_cancelled=lambda: self._is_cancelled(run_id),
        )

        run_logger.info(f"Executing flow {flow.id} with {len(nodes)} node(s)")
        current: Any = run.input

        for index, node in enumerate(nodes):
            node_id = node.get("id") or f"node-{index}"
            node_type = node.get("type")

            if node_id in completed:
                current = completed[node_id]
                node_outputs[node_id] = current
                results.append({"nodeId": node_id, "type": node_type, "output": current})
                continue

            if self._is_cancelled(run_id):
                run_logger.info(f"Run cancelled before node {node_id}; stopping")
                return {"cancelled": True, "nodeCount": len(results), "results": results}

            try:
                if not node_type:
                    raise ConfigurationError(f"Node {node_id} has no type")
                handler = self.registry.get(node_type)
                run_logger.info(f"Running node {node_id} ({node_type})")
                output = handler.execute(node.get("data") or {}, current, context.for_node(node_id))
                output = jsonable_encoder(output)
            except Exception as e:
                message = str(e) or type(e).__name__
                run_logger.error(f"Node {node_id} ({node_type}) failed: {message}", exc_info=True)
                self.runs.save_node_output(run_id, node_id, error=message)
                self._mark_failed(run_id, f"Node {node_id} failed: {message}")
                raise

            self.runs.save_node_output(run_id, node_id, output=output)
            node_outputs[node_id] = output
            results.append({"nodeId": node_id, "type": node_type, "output": output})
            current = output

        result = {"completed": True, "nodeCount": len(nodes), "results": results}
        try:
            self.runs.update_status(run_id, RunStatus.COMPLETED, output=result)
        except RunStateError:
            # Cancelled after the last node finished; the cancellation stands.
            run_logger.info("Run was cancelled before it could be completed")
            return {"cancelled": True, "nodeCount": len(results), "results": results}

        run_logger.info(f"Run completed with {len(nodes)} node(s)")
        return result

    def _is_cancelled(self, run_id: str) -> bool:
        return self.runs.get_status(run_id) == RunStatus.CANCELLED

    def _mark_failed(self, run_id: str, message: str) -> None:
        try:
            self.runs.update_status(run_id, RunStatus.FAILED, error=message)
        except RunStateError:
            logger.info(f"Run {run_id} reached a terminal state before it could be marked FAILED")
