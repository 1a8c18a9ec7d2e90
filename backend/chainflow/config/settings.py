"""
Application configuration and environment settings for Chainflow.

Defines a Pydantic-based Settings class for all environment variables and configuration options, including the relational store, the work queue, the scheduler, credential encryption, blockchain RPC and AI agent settings. Provides a cached settings accessor for use throughout the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local dev: backend/chainflow/config/settings.py -> parent.parent = backend/chainflow, parent.parent.parent = backend
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent

# Check for .env in multiple locations (for local dev vs container)
# 1. backend/.env (local development)
# 2. backend/chainflow/.env (container or alternative local setup)
_BACKEND_DIR = _PACKAGE_DIR.parent
if (_BACKEND_DIR / ".env").exists():
    ENV_FILE = _BACKEND_DIR / ".env"
else:
    ENV_FILE = _PACKAGE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )

    # Log settings
    log_level: str = Field("INFO")
    log_file: Optional[str] = Field(
        None, description="Optional path of a log file; console only when unset"
    )

    # Environment setting
    environment: str = Field("DEVELOPMENT")

    # Relational store
    database_url: str = Field(
        "sqlite:///./chainflow.db", description="SQLAlchemy URL of the relational store"
    )

    # Work queue settings
    redis_url: str = Field("redis://localhost:6379/0", description="Redis URL backing the work queue")
    queue_name: str = Field("flow-execution", description="Name of the run execution queue")
    queue_max_attempts: int = Field(
        3, description="Delivery attempts per job, including the first one"
    )
    queue_retry_intervals: str = Field(
        "5,10,20", description="Comma separated backoff in seconds between delivery attempts"
    )
    job_timeout_seconds: int = Field(
        900, description="Visibility timeout after which a stuck job is failed by the queue"
    )
    worker_concurrency: int = Field(5, description="Number of worker processes")

    # Scheduler settings
    scheduler_interval_seconds: int = Field(60, description="Seconds between scheduler ticks")

    # Credential encryption
    encryption_key: str = Field(
        "chainflow-development-key",
        description="Hex, base64 or passphrase form of the AES-256-GCM key",
    )

    # External calls
    solana_rpc_url: str = Field("https://api.mainnet-beta.solana.com")
    price_api_url: str = Field("https://api.coingecko.com/api/v3/simple/price")
    telegram_api_url: str = Field("https://api.telegram.org")
    http_timeout_seconds: float = Field(30.0, description="Default timeout for outbound HTTP calls")

    # AI agent settings
    ai_default_max_retries: int = Field(5, description="Default turn bound of the agent loop")
    ai_memory_limit: int = Field(10, description="Memory entries loaded into the system prompt")
    ai_memory_ttl_hours: int = Field(24, description="Retention of internal AI memory entries")
    ai_memory_max_entries: int = Field(
        50, description="Entries kept per (flow, node) in the internal memory store"
    )

    # API settings
    api_port: int = Field(8081)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def retry_intervals(self) -> List[int]:
        """Parsed ``queue_retry_intervals``."""
        return [int(part) for part in self.queue_retry_intervals.split(",") if part.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
