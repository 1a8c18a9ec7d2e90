"""
Chainflow API - Main Application.

FastAPI application with modular router structure.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chainflow.api.routers import credentials_router, flows_router, health_router, runs_router, webhooks_router
from chainflow.config.logging_config import setup_logging
from chainflow.config.settings import get_settings

setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(title="Chainflow API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router.router)
app.include_router(flows_router.router)
app.include_router(runs_router.router)
app.include_router(webhooks_router.router)
app.include_router(credentials_router.router)


if __name__ == "__main__":
    import uvicorn

    api_port = get_settings().api_port
    logger.info(f"Starting FastAPI app on port {api_port}")
    uvicorn.run(app, host="0.0.0.0", port=api_port)
