"""
Execution Service for Chainflow.

Entry points that turn a trigger (manual call, webhook delivery, scheduler
tick) into a QUEUED run plus exactly one queue job, and the cancellation of
runs in flight.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from chainflow.database.models.runs import Run
from chainflow.database.repositories.flows_repository import FlowsRepository
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.database.repositories.webhook_events_repository import WebhookEventsRepository
from chainflow.database.utils.enums import FlowStatus, RunStatus
from chainflow.engine.errors import FlowNotFoundError, FlowValidationError, RunNotFoundError, RunStateError
from chainflow.queue.producer import enqueue_run

logger = logging.getLogger(__name__)

Enqueue = Callable[[str, str, Any], Any]


class ExecutionService:
    def __init__(self, session: Session, enqueue: Optional[Enqueue] = None):
        self.session = session
        self.flows = FlowsRepository(session)
        self.runs = RunsRepository(session)
        self.webhook_events = WebhookEventsRepository(session)
        self._enqueue = enqueue or enqueue_run

    def trigger_flow(self, flow_id: str, user_id: str, run_input: Any = None) -> Run:
        """
        Create a run for ``flow_id`` and enqueue it.

        Raises:
            FlowNotFoundError: If the flow does not exist or belongs to someone else.
            FlowValidationError: If the flow is INACTIVE.
        """
        flow = self.flows.get_flow(flow_id, user_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        if flow.status == FlowStatus.INACTIVE.value:
            raise FlowValidationError(f"Flow {flow_id} is inactive")

        run = self.runs.create_run(flow.id, flow.user_id, run_input)
        self._dispatch(run)
        return run

    def ingest_webhook(self, flow_id: str, events: List[Dict[str, Any]]) -> Run:
        """
        Store a webhook delivery and start one run for the whole batch.

        Raises:
            FlowValidationError: If ``events`` is empty.
            FlowNotFoundError: If the flow does not exist.
        """
        if not events:
            raise FlowValidationError("Webhook delivery contains no events")
        flow = self.flows.get_flow(flow_id)
        if flow is None:
            raise FlowNotFoundError(flow_id)
        if flow.status == FlowStatus.INACTIVE.value:
            raise FlowValidationError(f"Flow {flow_id} is inactive")

        records = self.webhook_events.store_events(flow.id, events)
        logger.info(f"Stored {len(records)} webhook events for flow {flow.id}")

        run = self.runs.create_run(
            flow.id,
            flow.user_id,
            {
                "trigger": "webhook",
                "events": events,
                "eventCount": len(events),
                "firstEvent": events[0],
            },
        )
        self.webhook_events.attach_run(records, run.id)
        self._dispatch(run)
        return run

    def cancel_run(self, run_id: str, user_id: str) -> Run:
        """
        Move a non-terminal run owned by ``user_id`` to CANCELLED.

        Raises:
            RunNotFoundError: If the run does not exist for this user.
            RunStateError: If the run already finished.
        """
        run = self.runs.get_run(run_id, user_id)
        if run is None:
            raise RunNotFoundError(run_id)
        run = self.runs.update_status(run_id, RunStatus.CANCELLED, error="Cancelled by user")
        logger.info(f"Run {run_id} cancelled by user {user_id}")
        return run

    def _dispatch(self, run: Run) -> None:
        try:
            self._enqueue(run.id, run.user_id, run.input)
        except Exception as e:
            logger.error(f"Failed to enqueue run {run.id}: {e}", exc_info=True)
            try:
                self.runs.update_status(run.id, RunStatus.FAILED, error=f"Failed to enqueue run: {e}")
            except RunStateError:
                logger.info(f"Run {run.id} left its QUEUED state before it could be marked FAILED")
            raise
