"""
Webhooks Router.

Flow-scoped ingestion URL for external event sources. A delivery may be a
bare JSON array of events, a single event object, or ``{"events": [...]}``.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status

from chainflow.api.models.execution_models import RunTriggerResponse
from chainflow.api.utils.dependencies import get_execution_service, to_http_exception
from chainflow.services.execution_service import ExecutionService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)


def _normalize_events(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("events"), list):
        payload = payload["events"]
    elif isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not all(isinstance(event, dict) for event in payload):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook payload must be an event object or a list of event objects",
        )
    return payload


@router.post("/{flow_id}", response_model=RunTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
def ingest_webhook(
    flow_id: str,
    payload: Any = Body(...),
    service: ExecutionService = Depends(get_execution_service),
) -> RunTriggerResponse:
    events = _normalize_events(payload)
    logger.info(f"Webhook delivery for flow {flow_id} with {len(events)} events")
    try:
        run = service.ingest_webhook(flow_id, events)
    except Exception as e:
        raise to_http_exception(e)
    return RunTriggerResponse(run_id=run.id, status=run.status, message=f"Queued {len(events)} events")
