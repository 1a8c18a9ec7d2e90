"""
Worker process.

Starts ``worker_concurrency`` rq workers on the run execution queue. Each
worker blocks on the queue and executes one run at a time.

Start with: python -m chainflow.worker
"""

import logging

from chainflow.config.logging_config import setup_logging
from chainflow.config.settings import get_settings
from chainflow.queue.worker import run_workers

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    settings = get_settings()
    logger.info(f"Starting {settings.worker_concurrency} workers on queue '{settings.queue_name}'")
    run_workers(settings.worker_concurrency)


if __name__ == "__main__":
    main()
