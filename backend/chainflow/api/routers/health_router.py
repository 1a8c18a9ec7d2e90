"""
Health Router.

Liveness with a database probe, and the catalogue of registered node types.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from chainflow.config.settings import get_settings
from chainflow.database.db import get_db
from chainflow.engine.registry import get_registry

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/")
def root():
    """Root endpoint."""
    return {"message": "Chainflow API"}


@router.get("/health")
def health(db: Session = Depends(get_db)):
    """Health check endpoint."""
    health_info = {
        "status": "ok",
        "environment": get_settings().environment,
        "database": "ok",
    }
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        health_info["status"] = "degraded"
        health_info["database"] = "error"
        health_info["database_error"] = str(e)
    return health_info


@router.get("/nodes/types")
def node_types():
    """List the node types the executor can dispatch."""
    return {"success": True, "types": get_registry().available_types()}
