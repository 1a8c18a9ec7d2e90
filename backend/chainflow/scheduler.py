"""
Scheduler process.

Runs independently from the API and the workers and evaluates flow schedules
every ``scheduler_interval_seconds``. SIGINT and SIGTERM stop it.

Start with: python -m chainflow.scheduler
"""

import logging
import signal
import threading

from chainflow.config.logging_config import setup_logging
from chainflow.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    scheduler = SchedulerService()
    shutdown = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down scheduler")
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    logger.info("Scheduler is running. Press Ctrl+C to stop.")
    try:
        while not shutdown.wait(1):
            pass
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
