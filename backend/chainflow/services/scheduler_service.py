"""
Scheduler Service for Chainflow.

Evaluates the schedule of every ACTIVE flow once per tick and enqueues a run
for each flow that is due. Two schedule forms are understood:

- intervals such as ``30s``, ``5m`` or ``1h``, due when the interval has
  elapsed since ``last_run_at``;
- valid five-field cron expressions (checked with croniter) of which only
  the minute field is evaluated (``*``, ``*/N`` or a literal minute).

``last_run_at`` is written only after the run was enqueued, so a crash between
the two can at most produce a duplicate trigger, never a skipped one.
"""

import logging
import re
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from croniter import croniter
from sqlalchemy.orm import Session

from chainflow.config.settings import Settings, get_settings
from chainflow.database.db import get_new_db_session
from chainflow.database.models.flows import Flow
from chainflow.database.repositories.flows_repository import FlowsRepository
from chainflow.database.repositories.runs_repository import RunsRepository
from chainflow.database.utils.enums import RunStatus
from chainflow.queue.producer import enqueue_run
from chainflow.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_INTERVAL = re.compile(r"^(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


def is_interval(schedule: str) -> bool:
    return bool(_INTERVAL.match(schedule or ""))


def parse_interval(schedule: str) -> timedelta:
    """
    Parse ``5m``-style schedules.

    Raises:
        ValueError: If ``schedule`` is not an interval.
    """
    match = _INTERVAL.match(schedule or "")
    if not match:
        raise ValueError(f"Not an interval schedule: {schedule!r}")
    return timedelta(seconds=int(match.group(1)) * _UNIT_SECONDS[match.group(2)])


def matches_cron(expression: str, now: datetime) -> bool:
    """
    Minute-field check of a five-field cron expression.

    The whole expression must be valid cron; only the minute field is then
    compared with ``now``.
    """
    parts = (expression or "").split()
    if len(parts) != 5 or not croniter.is_valid(expression):
        return False
    minute = parts[0]
    if minute == "*":
        return True
    if minute.startswith("*/"):
        step = minute[2:]
        if not step.isdigit() or int(step) == 0:
            return False
        return now.minute % int(step) == 0
    if minute.isdigit():
        return int(minute) == now.minute
    return False


def should_run_now(schedule: str, last_run_at: Optional[datetime], now: datetime) -> bool:
    if is_interval(schedule):
        if last_run_at is None:
            return True
        return now - ensure_utc(last_run_at) >= parse_interval(schedule)

    if not matches_cron(schedule, now):
        return False
    # One trigger per matching minute even if two ticks land in it.
    if last_run_at is not None:
        last = ensure_utc(last_run_at)
        if last.replace(second=0, microsecond=0) == now.replace(second=0, microsecond=0):
            return False
    return True


def calculate_next_run(schedule: str, now: datetime) -> Optional[datetime]:
    """``now + interval`` for interval schedules; cron schedules get ``None``."""
    if is_interval(schedule):
        return now + parse_interval(schedule)
    return None


class SchedulerService:
    """Periodic evaluator of flow schedules, run on a background thread."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = get_new_db_session,
        enqueue: Optional[Callable[[str, str, Any], Any]] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self._enqueue = enqueue or enqueue_run
        self.settings = settings or get_settings()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking; calling it while running does nothing."""
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, name="chainflow-scheduler", daemon=True)
            self._thread.start()
        logger.info(f"Scheduler started, ticking every {self.settings.scheduler_interval_seconds}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop after the current tick; calling it when stopped does nothing."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            self._thread = None
        thread.join(timeout)
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)
            self._stop_event.wait(self.settings.scheduler_interval_seconds)

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """
        Evaluate every scheduled flow once.

        Args:
            now: Evaluation time, defaults to the current UTC time.

        Returns:
            Ids of the runs that were enqueued.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        triggered: List[str] = []
        with self.session_factory() as session:
            flows = FlowsRepository(session).list_scheduled_flows()
            logger.debug(f"Scheduler tick at {now.isoformat()}: {len(flows)} scheduled flows")
            for flow in flows:
                try:
                    run_id = self._process_flow(session, flow, now)
                except Exception as e:
                    session.rollback()
                    logger.error(f"Error processing scheduled flow {flow.id}: {e}", exc_info=True)
                    continue
                if run_id:
                    triggered.append(run_id)
        return triggered

    def _process_flow(self, session: Session, flow: Flow, now: datetime) -> Optional[str]:
        if not should_run_now(flow.schedule, flow.last_run_at, now):
            return None

        logger.info(f"Triggering scheduled flow {flow.name} ({flow.id})")
        runs = RunsRepository(session)
        run = runs.create_run(flow.id, flow.user_id, {})
        try:
            self._enqueue(run.id, flow.user_id, {})
        except Exception as e:
            runs.update_status(run.id, RunStatus.FAILED, error=f"Failed to enqueue run: {e}")
            raise

        next_run = calculate_next_run(flow.schedule, now)
        FlowsRepository(session).update_schedule_timestamps(flow.id, now, next_run)
        logger.info(f"Enqueued run {run.id}; next run: {next_run.isoformat() if next_run else 'N/A'}")
        return run.id
