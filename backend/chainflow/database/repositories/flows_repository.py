"""
Flows Repository for Chainflow.

Provides database operations for flow definitions.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from chainflow.database.models.flows import Flow
from chainflow.database.utils.enums import FlowStatus

logger = logging.getLogger(__name__)


class FlowsRepository:
    """Repository for flow database operations."""

    def __init__(self, session: Session):
        """
        Initialize the repository with a database session.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    def create_flow(self, user_id: str, flow_data: Dict[str, Any]) -> Flow:
        """
        Create a new flow owned by ``user_id``.

        Args:
            user_id: Owner of the flow.
            flow_data: Dictionary with name, nodes, connections, status and schedule.

        Returns:
            The created Flow instance.
        """
        try:
            status = flow_data.get("status") or FlowStatus.DRAFT
            flow = Flow(
                user_id=user_id,
                name=flow_data["name"],
                nodes=flow_data.get("nodes") or [],
                connections=flow_data.get("connections") or [],
                status=FlowStatus(status).value,
                schedule=flow_data.get("schedule"),
            )
            self.session.add(flow)
            self.session.commit()
            self.session.refresh(flow)
            logger.info(f"Created flow {flow.id} for user {user_id}")
            return flow
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error creating flow: {e}")
            raise

    def get_flow(self, flow_id: str, user_id: Optional[str] = None) -> Optional[Flow]:
        """
        Retrieve a flow, optionally restricted to its owner.

        Args:
            flow_id: The flow identifier.
            user_id: When given, flows owned by someone else are not returned.

        Returns:
            The Flow instance if found, None otherwise.
        """
        query = self.session.query(Flow).filter(Flow.id == flow_id)
        if user_id is not None:
            query = query.filter(Flow.user_id == user_id)
        return query.first()

    def list_flows(self, user_id: str) -> List[Flow]:
        return (
            self.session.query(Flow)
            .filter(Flow.user_id == user_id)
            .order_by(Flow.created_at.desc())
            .all()
        )

    def list_scheduled_flows(self) -> List[Flow]:
        """Return every ACTIVE flow that carries a schedule expression."""
        return (
            self.session.query(Flow)
            .filter(Flow.status == FlowStatus.ACTIVE.value)
            .filter(Flow.schedule.isnot(None))
            .filter(Flow.schedule != "")
            .all()
        )

    def update_flow(self, flow: Flow, changes: Dict[str, Any]) -> Flow:
        """
        Apply a partial update to ``flow``.

        Args:
            flow: The flow to update.
            changes: Only the keys present are written.

        Returns:
            The refreshed Flow instance.
        """
        try:
            for field in ("name", "nodes", "connections", "schedule"):
                if field in changes:
                    setattr(flow, field, changes[field])
            if changes.get("status") is not None:
                flow.status = FlowStatus(changes["status"]).value
            self.session.commit()
            self.session.refresh(flow)
            return flow
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error updating flow {flow.id}: {e}")
            raise

    def update_schedule_timestamps(
        self, flow_id: str, last_run_at: datetime, next_run_at: Optional[datetime]
    ) -> None:
        """Record a scheduler firing. Only the two timestamps are touched."""
        try:
            self.session.query(Flow).filter(Flow.id == flow_id).update(
                {Flow.last_run_at: last_run_at, Flow.next_run_at: next_run_at},
                synchronize_session="fetch",
            )
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error updating schedule timestamps for flow {flow_id}: {e}")
            raise

    def delete_flow(self, flow: Flow) -> None:
        try:
            self.session.delete(flow)
            self.session.commit()
            logger.info(f"Deleted flow {flow.id}")
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error deleting flow {flow.id}: {e}")
            raise
