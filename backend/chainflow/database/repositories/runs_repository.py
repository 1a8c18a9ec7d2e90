"""
Runs Repository for Chainflow.

Provides database operations for runs and their node outputs. Status writes go
through ``update_status`` which enforces the run lifecycle: QUEUED -> RUNNING ->
COMPLETED | FAILED, with CANCELLED reachable from any non-terminal state.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from chainflow.database.models.runs import NodeOutput, Run
from chainflow.database.utils.enums import ALLOWED_RUN_TRANSITIONS, RunStatus
from chainflow.engine.errors import RunNotFoundError, RunStateError
from chainflow.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class RunsRepository:
    """Repository for run and node output database operations."""

    def __init__(self, session: Session):
        """
        Initialize the repository with a database session.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    def create_run(self, flow_id: str, user_id: str, run_input: Any = None) -> Run:
        """
        Create a QUEUED run for ``flow_id``.

        Args:
            flow_id: Flow to execute.
            user_id: Owner of the flow.
            run_input: Trigger payload handed to the first node.

        Returns:
            The created Run instance.
        """
        try:
            run = Run(
                flow_id=flow_id,
                user_id=user_id,
                status=RunStatus.QUEUED.value,
                input=run_input if run_input is not None else {},
            )
            self.session.add(run)
            self.session.commit()
            self.session.refresh(run)
            logger.info(f"Created run {run.id} for flow {flow_id}")
            return run
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error creating run for flow {flow_id}: {e}")
            raise

    def get_run(self, run_id: str, user_id: Optional[str] = None) -> Optional[Run]:
        query = self.session.query(Run).filter(Run.id == run_id)
        if user_id is not None:
            query = query.filter(Run.user_id == user_id)
        return query.first()

    def get_status(self, run_id: str) -> Optional[RunStatus]:
        """
        Read the persisted status, bypassing anything cached in the session.

        Used at node boundaries to observe cancellations written by another
        process.
        """
        row = (
            self.session.query(Run.status)
            .filter(Run.id == run_id)
            .execution_options(populate_existing=True)
            .first()
        )
        if row is None:
            return None
        return RunStatus(row[0])

    def list_runs_for_flow(self, flow_id: str, limit: int = 20) -> List[Run]:
        return (
            self.session.query(Run)
            .filter(Run.flow_id == flow_id)
            .order_by(Run.created_at.desc())
            .limit(limit)
            .all()
        )

    def update_status(
        self,
        run_id: str,
        status: RunStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> Run:
        """
        Transition a run to ``status``.

        Args:
            run_id: The run to update.
            status: Target status.
            output: Aggregate result, written for COMPLETED.
            error: Terminal error message, written for FAILED.

        Returns:
            The updated Run instance.

        Raises:
            RunNotFoundError: If the run does not exist.
            RunStateError: If the transition is not allowed.
        """
        run = self.session.get(Run, run_id, populate_existing=True)
        if run is None:
            raise RunNotFoundError(run_id)

        current = RunStatus(run.status)
        if status not in ALLOWED_RUN_TRANSITIONS[current]:
            raise RunStateError(
                f"Run {run_id} cannot move from {current.value} to {status.value}"
            )

        try:
            run.status = status.value
            now = utc_now()
            if status == RunStatus.RUNNING and run.started_at is None:
                run.started_at = now
            if status.is_terminal:
                run.finished_at = now
            if output is not None:
                run.output = output
            if error is not None:
                run.error = error
            self.session.commit()
            self.session.refresh(run)
            logger.debug(f"Run {run_id} moved from {current.value} to {status.value}")
            return run
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error updating status of run {run_id}: {e}")
            raise

    def save_node_output(
        self,
        run_id: str,
        node_id: str,
        output: Any = None,
        error: Optional[str] = None,
    ) -> NodeOutput:
        """
        Append one node output record.

        Args:
            run_id: Run the node belongs to.
            node_id: Node that produced the record.
            output: Handler result on success.
            error: Error message when the handler raised.

        Returns:
            The persisted NodeOutput.
        """
        try:
            record = NodeOutput(run_id=run_id, node_id=node_id, output=output, error=error)
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
            return record
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error saving output of node {node_id} for run {run_id}: {e}")
            raise

    def get_node_outputs(self, run_id: str) -> List[NodeOutput]:
        """Return the node outputs of a run in execution order."""
        return (
            self.session.query(NodeOutput)
            .filter(NodeOutput.run_id == run_id)
            .order_by(NodeOutput.created_at.asc(), NodeOutput.id.asc())
            .all()
        )
