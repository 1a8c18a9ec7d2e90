"""
Queue worker: the job entry point and the rq worker processes that run it.

``execute_run_job`` is what rq invokes for every delivery. Errors that a
redelivery cannot fix are logged and swallowed so rq does not retry them;
anything else propagates and rq applies the retry policy the producer
attached to the job.
"""

import logging
import os
from functools import lru_cache
from multiprocessing import Process
from typing import Any, Dict, List, Optional

import redis
from rq import Queue, Worker
from rq.job import Job

from chainflow.config.settings import get_settings
from chainflow.database.db import get_new_db_session
from chainflow.engine.errors import is_retryable
from chainflow.engine.executor import FlowExecutor
from chainflow.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_connection_manager() -> ConnectionManager:
    """Per-process pool of user database engines."""
    return ConnectionManager()


def execute_run_job(
    run_id: str,
    user_id: Optional[str] = None,
    input: Any = None,
    triggered_at: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Execute one run delivered by the queue.

    Returns:
        ``{success, runId, result}`` on success, ``{success: False, runId,
        error}`` for errors that must not be retried.

    Raises:
        Exception: Retryable errors, so rq can redeliver the job.
    """
    logger.info(f"Processing run {run_id} for user {user_id} (triggered at {triggered_at})")
    with get_new_db_session() as session:
        executor = FlowExecutor(session, connections=get_connection_manager())
        try:
            result = executor.execute(run_id)
        except Exception as e:
            if is_retryable(e):
                logger.error(f"Run {run_id} failed, leaving it to the queue retry policy: {e}")
                raise
            logger.error(f"Run {run_id} failed permanently: {e}")
            return {"success": False, "runId": run_id, "error": str(e)}

    logger.info(f"Run {run_id} processed")
    return {"success": True, "runId": run_id, "result": result}


class ChainflowWorker(Worker):
    """rq worker that tags jobs with the worker pid and run id."""

    def perform_job(self, job: Job, queue: Queue) -> bool:
        job.meta["pid"] = os.getpid()
        job.meta["run_id"] = job.kwargs.get("run_id")
        job.save_meta()
        logger.info(f"Starting job {job.id} (retries left: {job.retries_left})")
        return super().perform_job(job, queue)

    def handle_job_failure(self, job: Job, queue: Queue, *args, **kwargs):
        logger.warning(f"Job {job.id} for run {job.meta.get('run_id')} failed")
        return super().handle_job_failure(job, queue, *args, **kwargs)


def start_worker() -> None:
    """Run one blocking worker on the execution queue."""
    settings = get_settings()
    connection = redis.Redis.from_url(settings.redis_url)
    queue = Queue(settings.queue_name, connection=connection)
    worker = ChainflowWorker([queue], connection=connection)
    logger.info(f"Worker {worker.name} listening on {settings.queue_name}")
    try:
        # The scheduler component is what re-enqueues jobs with retry intervals.
        worker.work(with_scheduler=True)
    finally:
        get_connection_manager().close_all()


def run_workers(concurrency: Optional[int] = None) -> None:
    """Start ``concurrency`` worker processes and wait for all of them."""
    concurrency = concurrency or get_settings().worker_concurrency
    workers: List[Process] = []
    for _ in range(concurrency):
        process = Process(target=start_worker)
        process.start()
        workers.append(process)
    logger.info(f"Started {len(workers)} worker processes")

    for process in workers:
        process.join()
