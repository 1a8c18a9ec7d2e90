"""
Logging configuration for Chainflow.

Configures application-wide logging using settings from the environment. Provides a setup_logging function to initialize logging handlers and formatters for console and optional file output, and a run-scoped adapter handed to node handlers.
"""

import logging
import logging.config

from chainflow.config.settings import get_settings


def setup_logging():
    """Set up logging configuration for the process using environment settings."""
    settings = get_settings()
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": settings.log_level,
        },
    }
    if settings.log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "level": settings.log_level,
            "filename": settings.log_file,
        }

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": settings.log_level,
        },
        "loggers": {
            "chainflow": {
                "handlers": list(handlers),
                "level": settings.log_level,
                "propagate": False,
            },
        },
    }
    logging.config.dictConfig(logging_config)


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefix log records with the run and node currently executing."""

    def process(self, msg, kwargs):
        run_id = self.extra.get("run_id")
        node_id = self.extra.get("node_id")
        if node_id:
            return f"[run={run_id} node={node_id}] {msg}", kwargs
        return f"[run={run_id}] {msg}", kwargs


def get_run_logger(run_id: str, node_id: str | None = None) -> RunLoggerAdapter:
    """Return the logger handed to node handlers for one run."""
    return RunLoggerAdapter(
        logging.getLogger("chainflow.run"), {"run_id": run_id, "node_id": node_id}
    )
