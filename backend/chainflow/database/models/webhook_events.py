"""
Webhook event model for Chainflow.

Every event posted to a flow-scoped webhook URL is stored before the run it
triggers is enqueued.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from chainflow.database.models import Base
from chainflow.utils.time_utils import utc_now


class WebhookEvent(Base):
    """SQLAlchemy model for webhook_events table."""

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    flow_id = Column(String(36), ForeignKey("flows.id", ondelete="CASCADE"), nullable=False, index=True)
    run_id = Column(String(36), nullable=True)
    payload = Column(JSON, nullable=False)
    received_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<WebhookEvent(id='{self.id}', flow_id='{self.flow_id}', run_id='{self.run_id}')>"
