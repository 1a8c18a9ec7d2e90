"""
Webhook Events Repository for Chainflow.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from chainflow.database.models.webhook_events import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventsRepository:
    """Repository for webhook event database operations."""

    def __init__(self, session: Session):
        self.session = session

    def store_events(self, flow_id: str, events: List[Dict[str, Any]]) -> List[WebhookEvent]:
        """Persist every event of one delivery in a single transaction."""
        try:
            records = [WebhookEvent(flow_id=flow_id, payload=event) for event in events]
            self.session.add_all(records)
            self.session.commit()
            return records
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error storing webhook events for flow {flow_id}: {e}")
            raise

    def attach_run(self, events: List[WebhookEvent], run_id: str) -> None:
        try:
            for event in events:
                event.run_id = run_id
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error linking webhook events to run {run_id}: {e}")
            raise
