"""
Flows Router.

CRUD for flow definitions and the manual trigger endpoints.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from chainflow.api.models.execution_models import DeleteResponse, RunTriggerRequest, RunTriggerResponse
from chainflow.api.utils.dependencies import get_execution_service, get_user_id, to_http_exception
from chainflow.database.db import get_db
from chainflow.database.models.flows import FlowCreate, FlowResponse, FlowUpdate
from chainflow.database.models.runs import RunResponse
from chainflow.database.repositories.flows_repository import FlowsRepository
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.services.execution_service import ExecutionService

router = APIRouter(prefix="/flows", tags=["Flows"])
logger = logging.getLogger(__name__)


def _get_owned_flow(repository: FlowsRepository, flow_id: str, user_id: str):
    flow = repository.get_flow(flow_id, user_id)
    if flow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Flow not found: {flow_id}")
    return flow


@router.post("", response_model=FlowResponse, status_code=status.HTTP_201_CREATED)
def create_flow(
    request: FlowCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> FlowResponse:
    """Create a flow owned by the caller."""
    try:
        flow = FlowsRepository(db).create_flow(user_id, request.model_dump(mode="json", by_alias=True))
    except Exception as e:
        raise to_http_exception(e)
    return FlowResponse.model_validate(flow)


@router.get("", response_model=List[FlowResponse])
def list_flows(user_id: str = Depends(get_user_id), db: Session = Depends(get_db)) -> List[FlowResponse]:
    return [FlowResponse.model_validate(flow) for flow in FlowsRepository(db).list_flows(user_id)]


@router.get("/{flow_id}", response_model=FlowResponse)
def get_flow(flow_id: str, user_id: str = Depends(get_user_id), db: Session = Depends(get_db)) -> FlowResponse:
    return FlowResponse.model_validate(_get_owned_flow(FlowsRepository(db), flow_id, user_id))


@router.patch("/{flow_id}", response_model=FlowResponse)
def update_flow(
    flow_id: str,
    request: FlowUpdate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> FlowResponse:
    """Update name, nodes, connections, status or schedule; omitted fields are kept."""
    repository = FlowsRepository(db)
    flow = _get_owned_flow(repository, flow_id, user_id)
    changes = request.model_dump(mode="json", by_alias=True, exclude_unset=True)
    try:
        flow = repository.update_flow(flow, changes)
    except Exception as e:
        raise to_http_exception(e)
    logger.info(f"Updated flow {flow_id}: {', '.join(changes) or 'no changes'}")
    return FlowResponse.model_validate(flow)


@router.delete("/{flow_id}", response_model=DeleteResponse)
def delete_flow(flow_id: str, user_id: str = Depends(get_user_id), db: Session = Depends(get_db)) -> DeleteResponse:
    repository = FlowsRepository(db)
    flow = _get_owned_flow(repository, flow_id, user_id)
    try:
        repository.delete_flow(flow)
    except Exception as e:
        raise to_http_exception(e)
    return DeleteResponse(id=flow_id)


def _trigger(flow_id: str, run_input, user_id: str, service: ExecutionService) -> RunTriggerResponse:
    try:
        run = service.trigger_flow(flow_id, user_id, run_input)
    except Exception as e:
        raise to_http_exception(e)
    return RunTriggerResponse(run_id=run.id, status=run.status)


@router.post("/{flow_id}/run", response_model=RunTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
def run_flow(
    flow_id: str,
    request: RunTriggerRequest = RunTriggerRequest(),
    user_id: str = Depends(get_user_id),
    service: ExecutionService = Depends(get_execution_service),
) -> RunTriggerResponse:
    """Queue a run of the flow with the given input."""
    return _trigger(flow_id, request.input, user_id, service)


@router.post("/{flow_id}/trigger", response_model=RunTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_flow(
    flow_id: str,
    user_id: str = Depends(get_user_id),
    service: ExecutionService = Depends(get_execution_service),
) -> RunTriggerResponse:
    """Queue a run of the flow without input."""
    return _trigger(flow_id, {}, user_id, service)


@router.get("/{flow_id}/runs", response_model=List[RunResponse])
def list_flow_runs(
    flow_id: str,
    limit: int = 20,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> List[RunResponse]:
    flow = _get_owned_flow(FlowsRepository(db), flow_id, user_id)
    runs = RunsRepository(db).list_runs_for_flow(flow.id, limit=limit)
    return [RunResponse.model_validate(run) for run in runs]
