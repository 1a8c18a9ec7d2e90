"""
Connection Manager.

Keeps one pooled SQLAlchemy engine per user database credential. Engines are
opened on first use, shared by every run in the process that references the
same credential, and disposed explicitly on shutdown.
"""

import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from chainflow.database.utils.enums import CredentialType
from chainflow.engine.errors import ConfigurationError, CredentialAccessError

logger = logging.getLogger(__name__)

EngineFactory = Callable[[str], Engine]


def _default_engine_factory(connection_url: str) -> Engine:
    return create_engine(
        connection_url,
        pool_size=10,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={"connect_timeout": 5},
    )


def normalize_postgres_url(connection_url: str) -> str:
    """Point plain ``postgres://`` URLs at the psycopg driver."""
    for prefix in ("postgres://", "postgresql://"):
        if connection_url.startswith(prefix):
            return "postgresql+psycopg://" + connection_url[len(prefix):]
    return connection_url


class ConnectionManager:
    """Thread-safe credential id -> engine map with an explicit lifecycle."""

    def __init__(self, engine_factory: Optional[EngineFactory] = None, verify: bool = True):
        self._engine_factory = engine_factory or _default_engine_factory
        self._verify = verify
        self._engines: Dict[str, Tuple[Engine, str]] = {}
        self._lock = threading.Lock()

    def get_engine(self, credential_id: str, user_id: str, vault) -> Engine:
        """
        Return the engine for ``credential_id``, opening it on first use.

        Args:
            credential_id: A ``postgres_db`` credential.
            user_id: Owner of the run requesting the engine.
            vault: CredentialService used to resolve the connection URL.

        Raises:
            CredentialAccessError: If the cached engine belongs to another user.
        """
        with self._lock:
            cached = self._engines.get(credential_id)
        if cached is not None:
            engine, owner = cached
            if owner != user_id:
                raise CredentialAccessError()
            return engine

        # The vault lookup and the connectivity probe are network I/O and run
        # outside the lock.
        payload = vault.resolve(credential_id, user_id, CredentialType.POSTGRES_DB.value)
        connection_url = payload.get("connectionUrl")
        if not connection_url:
            raise ConfigurationError(f"Credential {credential_id} has no connectionUrl")

        engine = self._engine_factory(normalize_postgres_url(connection_url))
        if self._verify:
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except Exception as e:
                engine.dispose()
                raise ConnectionError(f"Failed to connect to Postgres: {e}") from e

        with self._lock:
            existing = self._engines.get(credential_id)
            if existing is not None:
                # Another thread won the race; keep its engine.
                engine.dispose()
                if existing[1] != user_id:
                    raise CredentialAccessError()
                return existing[0]
            self._engines[credential_id] = (engine, user_id)
        logger.info(f"Postgres pool created for credential {credential_id}")
        return engine

    def close(self, credential_id: str) -> None:
        with self._lock:
            cached = self._engines.pop(credential_id, None)
        if cached is not None:
            cached[0].dispose()
            logger.info(f"Postgres pool closed for credential {credential_id}")

    def close_all(self) -> None:
        with self._lock:
            engines = list(self._engines.items())
            self._engines.clear()
        for credential_id, (engine, _) in engines:
            engine.dispose()
        if engines:
            logger.info(f"Closed {len(engines)} Postgres pools")

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)
