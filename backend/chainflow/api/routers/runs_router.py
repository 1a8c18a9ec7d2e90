"""
Runs Router.

Run status with the per-node records, and cancellation.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from chainflow.api.models.execution_models import RunCancelResponse
from chainflow.api.utils.dependencies import get_execution_service, get_user_id, to_http_exception
from chainflow.database.db import get_db
from chainflow.database.models.runs import NodeOutputResponse, RunResponse
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.services.execution_service import ExecutionService

router = APIRouter(prefix="/runs", tags=["Runs"])


@router.get("/{run_id}", response_model=RunResponse)
def get_run(run_id: str, user_id: str = Depends(get_user_id), db: Session = Depends(get_db)) -> RunResponse:
    """Return the run and its node outputs in execution order."""
    repository = RunsRepository(db)
    run = repository.get_run(run_id, user_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run not found: {run_id}")

    response = RunResponse.model_validate(run)
    response.node_outputs = [
        NodeOutputResponse.model_validate(record) for record in repository.get_node_outputs(run_id)
    ]
    return response


@router.post("/{run_id}/cancel", response_model=RunCancelResponse)
def cancel_run(
    run_id: str,
    user_id: str = Depends(get_user_id),
    service: ExecutionService = Depends(get_execution_service),
) -> RunCancelResponse:
    """Cancel a QUEUED or RUNNING run; it stops at the next node boundary."""
    try:
        run = service.cancel_run(run_id, user_id)
    except Exception as e:
        raise to_http_exception(e)
    return RunCancelResponse(run_id=run.id, status=run.status)
