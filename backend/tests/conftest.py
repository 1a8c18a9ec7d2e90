"""Shared fixtures: an in-memory database, factories and an API client."""

from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chainflow.config.logging_config import get_run_logger
from chainflow.database.models import Base
from chainflow.database.repositories.flows_repository import FlowsRepository
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.engine.context import ExecutionContext
from chainflow.engine.nodes.basic_nodes import ConditionNodeHandler, LogNodeHandler, MergeNodeHandler
from chainflow.engine.registry import NodeRegistry
from chainflow.services.credential_service import CredentialService
from tests.fakes import FailingHandler, RecordingHandler

TEST_ENCRYPTION_KEY = "chainflow-test-key"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_flow(db_session):
    """Create flows through the repository, ACTIVE by default."""

    def _make_flow(
        nodes: Optional[List[Dict[str, Any]]] = None,
        user_id: str = "alice",
        status: str = "ACTIVE",
        schedule: Optional[str] = None,
        name: str = "Test flow",
    ):
        return FlowsRepository(db_session).create_flow(
            user_id,
            {"name": name, "nodes": nodes or [], "status": status, "schedule": schedule},
        )

    return _make_flow


@pytest.fixture
def make_run(db_session):
    def _make_run(flow, run_input: Any = None):
        return RunsRepository(db_session).create_run(flow.id, flow.user_id, run_input)

    return _make_run


@pytest.fixture
def credential_service(db_session):
    return CredentialService(db_session, encryption_key=TEST_ENCRYPTION_KEY)


@pytest.fixture
def recording_handler():
    return RecordingHandler()


@pytest.fixture
def registry(recording_handler):
    return NodeRegistry(
        [
            ConditionNodeHandler(),
            LogNodeHandler(),
            MergeNodeHandler(),
            recording_handler,
            FailingHandler(),
        ]
    )


@pytest.fixture
def make_context(registry):
    """Build an execution context; no database unless ``db`` is passed."""

    def _make_context(
        flow_nodes: Optional[List[Dict[str, Any]]] = None,
        current_node_id: Optional[str] = None,
        **overrides,
    ) -> ExecutionContext:
        values = dict(
            run_id="run-1",
            flow_id="flow-1",
            user_id="alice",
            logger=get_run_logger("run-1", current_node_id),
            current_node_id=current_node_id,
            flow_nodes=flow_nodes or [],
            registry=registry,
            http_timeout=5.0,
        )
        values.update(overrides)
        return ExecutionContext(**values)

    return _make_context


@pytest.fixture
def enqueued():
    """Enqueue calls made by the services under test."""
    return []


@pytest.fixture
def fake_enqueue(enqueued):
    def _enqueue(run_id, user_id, run_input=None):
        enqueued.append({"run_id": run_id, "user_id": user_id, "input": run_input})
        return run_id

    return _enqueue


@pytest.fixture
def client(db_session, fake_enqueue):
    from fastapi.testclient import TestClient

    from chainflow.api.utils.dependencies import get_credential_service, get_execution_service
    from chainflow.database.db import get_db
    from chainflow.main import app
    from chainflow.services.execution_service import ExecutionService

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_execution_service] = lambda: ExecutionService(db_session, enqueue=fake_enqueue)
    app.dependency_overrides[get_credential_service] = lambda: CredentialService(
        db_session, encryption_key=TEST_ENCRYPTION_KEY
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
