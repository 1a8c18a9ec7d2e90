"""
Credential models for Chainflow.

Credentials are user-owned secrets encrypted at rest. Only metadata ever
leaves the service through the API.
"""

import uuid
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel
from sqlalchemy import Boolean, Column, DateTime, String, Text

from chainflow.database.models import Base
from chainflow.utils.time_utils import utc_now


class CredentialCreate(BaseModel):
    """
    Pydantic model for creating a credential.

    Fields:
        name: Display name.
        type: Credential kind, e.g. ``postgres_db``, ``telegram``, ``email``, ``ai``.
        data: Secret payload; encrypted before it is stored.
    """

    name: str
    type: str
    data: Dict[str, Any]

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Alerts bot",
                "type": "telegram",
                "data": {"token": "123456:ABC", "chatId": "-1001234"},
            }
        }
    }


class CredentialResponse(BaseModel):
    """Credential metadata; never carries the secret."""

    id: str
    name: str
    type: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class Credential(Base):
    """SQLAlchemy model for credentials table."""

    __tablename__ = "credentials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    data = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self):
        return f"<Credential(id='{self.id}', type='{self.type}', user_id='{self.user_id}', is_active={self.is_active})>"
