"""Tests for the per-credential engine cache and the query helpers."""

import threading

import pytest
from sqlalchemy import create_engine, text

from chainflow.engine.errors import ConfigurationError, CredentialAccessError
from chainflow.services import postgres_query_service
from chainflow.services.connection_manager import ConnectionManager, normalize_postgres_url


class FakeEngine:
    def __init__(self, url):
        self.url = url
        self.disposed = False

    def dispose(self):
        self.disposed = True


class FakeVault:
    def __init__(self, owners):
        self.owners = owners
        self.lookups = 0

    def resolve(self, credential_id, user_id, expected_type=None):
        self.lookups += 1
        if self.owners.get(credential_id) != user_id:
            raise CredentialAccessError()
        return {"connectionUrl": f"postgres://db/{credential_id}"}


@pytest.fixture
def created():
    return []


@pytest.fixture
def manager(created):
    def factory(url):
        engine = FakeEngine(url)
        created.append(engine)
        return engine

    return ConnectionManager(engine_factory=factory, verify=False)


class TestConnectionManager:
    def test_engine_is_created_once_per_credential(self, manager, created):
        vault = FakeVault({"c1": "alice"})

        first = manager.get_engine("c1", "alice", vault)
        second = manager.get_engine("c1", "alice", vault)

        assert first is second
        assert len(created) == 1
        assert vault.lookups == 1
        assert first.url == "postgresql+psycopg://db/c1"

    def test_cached_engine_is_not_shared_across_users(self, manager):
        manager.get_engine("c1", "alice", FakeVault({"c1": "alice"}))

        with pytest.raises(CredentialAccessError):
            manager.get_engine("c1", "mallory", FakeVault({"c1": "alice"}))

    def test_missing_connection_url(self, manager):
        class EmptyVault:
            def resolve(self, credential_id, user_id, expected_type=None):
                return {}

        with pytest.raises(ConfigurationError):
            manager.get_engine("c1", "alice", EmptyVault())

    def test_close_all_disposes_engines(self, manager, created):
        vault = FakeVault({"c1": "alice", "c2": "alice"})
        manager.get_engine("c1", "alice", vault)
        manager.get_engine("c2", "alice", vault)

        manager.close_all()

        assert len(manager) == 0
        assert all(engine.disposed for engine in created)

    def test_concurrent_first_use_keeps_one_engine(self, manager, created):
        vault = FakeVault({"c1": "alice"})
        barrier = threading.Barrier(4)
        engines = []

        def worker():
            barrier.wait()
            engines.append(manager.get_engine("c1", "alice", vault))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(engine) for engine in engines}) == 1
        assert len(manager) == 1
        assert sum(not engine.disposed for engine in created) == 1


class TestQueryHelpers:
    def test_normalize_url(self):
        assert normalize_postgres_url("postgres://u@h/db") == "postgresql+psycopg://u@h/db"
        assert normalize_postgres_url("postgresql://u@h/db") == "postgresql+psycopg://u@h/db"
        assert normalize_postgres_url("sqlite://") == "sqlite://"

    def test_positional_params(self):
        sql, binds = postgres_query_service.bind_positional_params(
            "SELECT * FROM t WHERE a = $1 AND b = $2 OR c = $1", ["x", 2]
        )
        assert sql == "SELECT * FROM t WHERE a = :p1 AND b = :p2 OR c = :p1"
        assert binds == {"p1": "x", "p2": 2}

    def test_missing_param(self):
        with pytest.raises(ConfigurationError):
            postgres_query_service.bind_positional_params("SELECT $2", ["only one"])

    def test_identifiers(self):
        assert postgres_query_service.validate_identifier("public.agent_memory") == "public.agent_memory"
        with pytest.raises(ConfigurationError):
            postgres_query_service.validate_identifier("users; DROP TABLE users")

    def test_read_only_detection(self):
        assert postgres_query_service.is_read_only("  select 1")
        assert postgres_query_service.is_read_only("WITH x AS (SELECT 1) SELECT * FROM x")
        assert not postgres_query_service.is_read_only("UPDATE t SET a = 1")

    def test_read_query_cannot_modify_data(self):
        engine = create_engine("sqlite://")
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE users (name TEXT)"))
            connection.execute(text("INSERT INTO users VALUES ('ann'), ('bo')"))

        with pytest.raises(postgres_query_service.QueryExecutionError):
            postgres_query_service.execute_read_query(engine, "WITH x AS (SELECT 1) DELETE FROM users")

        rows = postgres_query_service.execute_read_query(engine, "SELECT name FROM users WHERE name = $1", ["bo"])
        assert rows == [{"name": "bo"}]
        with engine.connect() as connection:
            assert connection.execute(text("SELECT COUNT(*) FROM users")).scalar() == 2
        engine.dispose()

    def test_write_requires_where_for_delete(self, engine):
        with pytest.raises(ConfigurationError):
            postgres_query_service.execute_write(engine, "flows", "DELETE")
