"""API Routers."""

from chainflow.api.routers import credentials_router, flows_router, health_router, runs_router, webhooks_router

__all__ = [
    "credentials_router",
    "flows_router",
    "health_router",
    "runs_router",
    "webhooks_router",
]
