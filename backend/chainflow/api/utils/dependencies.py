"""
Shared FastAPI dependencies and error translation for the routers.
"""

import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from chainflow.database.db import get_db
from chainflow.engine.errors import (
    ConfigurationError,
    CredentialAccessError,
    DataConsistencyError,
    FlowValidationError,
    RunStateError,
)
from chainflow.services.credential_service import CredentialService
from chainflow.services.execution_service import ExecutionService

logger = logging.getLogger(__name__)


def get_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """Caller identity, forwarded by the authenticating gateway."""
    if not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_execution_service(db: Session = Depends(get_db)) -> ExecutionService:
    return ExecutionService(db)


def get_credential_service(db: Session = Depends(get_db)) -> CredentialService:
    return CredentialService(db)


def to_http_exception(error: Exception) -> HTTPException:
    """Map a service error onto the HTTP status the routers answer with."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, (DataConsistencyError, CredentialAccessError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, RunStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, (FlowValidationError, ConfigurationError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.error(f"Unhandled API error: {error}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
