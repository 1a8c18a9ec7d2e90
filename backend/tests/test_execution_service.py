"""Tests for trigger, webhook ingestion and cancellation."""

import pytest

from chainflow.database.models.webhook_events import WebhookEvent
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.database.utils.enums import RunStatus
from chainflow.engine.errors import FlowNotFoundError, FlowValidationError, RunNotFoundError, RunStateError
from chainflow.services.execution_service import ExecutionService


@pytest.fixture
def service(db_session, fake_enqueue):
    return ExecutionService(db_session, enqueue=fake_enqueue)


class TestTrigger:
    def test_creates_queued_run_and_one_job(self, service, make_flow, enqueued):
        flow = make_flow([{"id": "a", "type": "log"}])

        run = service.trigger_flow(flow.id, "alice", {"price": 101})

        assert run.status == RunStatus.QUEUED.value
        assert run.input == {"price": 101}
        assert enqueued == [{"run_id": run.id, "user_id": "alice", "input": {"price": 101}}]

    def test_draft_flows_can_be_run_manually(self, service, make_flow):
        flow = make_flow(status="DRAFT")
        assert service.trigger_flow(flow.id, "alice").status == RunStatus.QUEUED.value

    def test_inactive_flow_is_rejected(self, service, make_flow, enqueued):
        flow = make_flow(status="INACTIVE")

        with pytest.raises(FlowValidationError):
            service.trigger_flow(flow.id, "alice")
        assert enqueued == []

    def test_other_users_flow_is_not_found(self, service, make_flow):
        flow = make_flow(user_id="bob")

        with pytest.raises(FlowNotFoundError):
            service.trigger_flow(flow.id, "alice")

    def test_enqueue_failure_marks_run_failed(self, db_session, make_flow):
        def broken_enqueue(run_id, user_id, run_input=None):
            raise ConnectionError("redis down")

        flow = make_flow()
        service = ExecutionService(db_session, enqueue=broken_enqueue)

        with pytest.raises(ConnectionError):
            service.trigger_flow(flow.id, "alice")

        runs = RunsRepository(db_session).list_runs_for_flow(flow.id)
        assert len(runs) == 1
        assert runs[0].status == RunStatus.FAILED.value
        assert "redis down" in runs[0].error


class TestWebhookIngestion:
    def test_one_run_per_delivery(self, db_session, service, make_flow, enqueued):
        flow = make_flow(user_id="bob")
        events = [{"type": "transfer", "amount": 5}, {"type": "transfer", "amount": 7}]

        run = service.ingest_webhook(flow.id, events)

        assert run.user_id == "bob"
        assert run.input == {"trigger": "webhook", "events": events, "eventCount": 2, "firstEvent": events[0]}
        assert len(enqueued) == 1
        stored = db_session.query(WebhookEvent).filter(WebhookEvent.flow_id == flow.id).all()
        assert sorted(event.payload["amount"] for event in stored) == [5, 7]
        assert {event.run_id for event in stored} == {run.id}

    def test_empty_delivery_is_rejected(self, service, make_flow, enqueued):
        flow = make_flow()

        with pytest.raises(FlowValidationError):
            service.ingest_webhook(flow.id, [])
        assert enqueued == []

    def test_unknown_flow(self, service):
        with pytest.raises(FlowNotFoundError):
            service.ingest_webhook("nope", [{"a": 1}])


class TestCancel:
    def test_cancel_queued_run(self, service, make_flow, make_run):
        run = make_run(make_flow())

        run = service.cancel_run(run.id, "alice")

        assert run.status == RunStatus.CANCELLED.value
        assert run.error == "Cancelled by user"
        assert run.finished_at is not None

    def test_cancel_finished_run_conflicts(self, db_session, service, make_flow, make_run):
        run = make_run(make_flow())
        runs = RunsRepository(db_session)
        runs.update_status(run.id, RunStatus.RUNNING)
        runs.update_status(run.id, RunStatus.COMPLETED, output={"completed": True})

        with pytest.raises(RunStateError):
            service.cancel_run(run.id, "alice")

    def test_cancel_someone_elses_run(self, service, make_flow, make_run):
        run = make_run(make_flow(user_id="bob"))

        with pytest.raises(RunNotFoundError):
            service.cancel_run(run.id, "alice")


class TestRunLifecycle:
    def test_transitions_never_go_backwards(self, db_session, make_flow, make_run):
        runs = RunsRepository(db_session)
        run = make_run(make_flow())
        runs.update_status(run.id, RunStatus.RUNNING)
        runs.update_status(run.id, RunStatus.FAILED, error="x")

        for status in (RunStatus.QUEUED, RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.CANCELLED):
            with pytest.raises(RunStateError):
                runs.update_status(run.id, status)

    def test_queued_cannot_complete_directly(self, db_session, make_flow, make_run):
        run = make_run(make_flow())
        with pytest.raises(RunStateError):
            RunsRepository(db_session).update_status(run.id, RunStatus.COMPLETED)
