"""
Work queue producer.

Run executions are delivered through an rq queue backed by Redis. The job
payload only carries identifiers and the trigger input; the worker reloads
everything else from the relational store.
"""

import logging
from typing import Any, Optional

import redis
from rq import Queue, Retry
from rq.job import Job

from chainflow.config.redis_settings import get_redis_connection
from chainflow.config.settings import Settings, get_settings
from chainflow.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_RESULT_TTL = 86_400  # 1 day
DEFAULT_FAILURE_TTL = 604_800  # 1 week


def get_queue(connection: Optional[redis.Redis] = None, settings: Optional[Settings] = None) -> Queue:
    settings = settings or get_settings()
    return Queue(settings.queue_name, connection=connection or get_redis_connection())


def build_retry(settings: Optional[Settings] = None) -> Optional[Retry]:
    """
    Retry policy for ``queue_max_attempts`` total deliveries.

    The executor marks a run FAILED before a node error reaches rq, so a
    redelivery of that run is refused by the status guard and dropped. The
    retries only do work when a worker died mid-run and left the run RUNNING.
    """
    settings = settings or get_settings()
    retries = settings.queue_max_attempts - 1
    if retries <= 0:
        return None
    return Retry(max=retries, interval=settings.retry_intervals[:retries] or 0)


def enqueue_run(
    run_id: str,
    user_id: str,
    run_input: Any = None,
    queue: Optional[Queue] = None,
    settings: Optional[Settings] = None,
) -> Job:
    """
    Enqueue the execution of ``run_id``.

    Args:
        run_id: A QUEUED run.
        user_id: Owner of the run.
        run_input: Trigger payload, stored on the run as well.
        queue: Queue to use; defaults to the configured execution queue.

    Returns:
        The rq job; its id is the run id.
    """
    settings = settings or get_settings()
    queue = queue or get_queue(settings=settings)
    job = queue.enqueue_call(
        "chainflow.queue.worker.execute_run_job",
        kwargs={
            "run_id": run_id,
            "user_id": user_id,
            "input": run_input,
            "triggered_at": utc_now().isoformat(),
        },
        timeout=settings.job_timeout_seconds,
        result_ttl=DEFAULT_RESULT_TTL,
        failure_ttl=DEFAULT_FAILURE_TTL,
        retry=build_retry(settings),
        job_id=run_id,
        description=f"execute run {run_id}",
    )
    logger.info(f"Enqueued run {run_id} on queue {queue.name} (job {job.id})")
    return job
