"""
Database models package for Chainflow.

Provides the SQLAlchemy declarative base class for all ORM models.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models to ensure they are registered with the Base metadata
# This is required for Alembic to detect all models for migrations
from chainflow.database.models.flows import Flow
from chainflow.database.models.runs import NodeOutput, Run
from chainflow.database.models.credentials import Credential
from chainflow.database.models.ai_memories import AIMemory
from chainflow.database.models.webhook_events import WebhookEvent

__all__ = [
    "Base",
    "Flow",
    "Run",
    "NodeOutput",
    "Credential",
    "AIMemory",
    "WebhookEvent",
]
