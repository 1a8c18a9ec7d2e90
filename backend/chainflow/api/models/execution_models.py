"""
Execution API Models.

Pydantic models for trigger, webhook and cancellation endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RunTriggerRequest(BaseModel):
    """Optional trigger payload; becomes the run input."""

    input: Optional[Any] = None


class RunTriggerResponse(BaseModel):
    success: bool = True
    run_id: str
    status: str
    message: str = "Run queued"


class WebhookEventsRequest(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)


class RunCancelResponse(BaseModel):
    success: bool = True
    run_id: str
    status: str


class DeleteResponse(BaseModel):
    success: bool = True
    id: str
