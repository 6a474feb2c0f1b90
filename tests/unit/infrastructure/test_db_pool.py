"""
Name: Database Pool Tests

Responsibilities:
  - Test pool lifecycle (init, get, close)
  - Test connection instrumentation (statement kind, healthcheck)
  - Offline unit tests (no real DB)

Notes:
  - Uses mocking for ConnectionPool
  - Tests pool singleton behavior
"""

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def _closed_pool():
    from ledger_auth.infrastructure.db.pool import close_pool

    close_pool()
    yield
    close_pool()


@pytest.mark.unit
class TestPoolLifecycle:
    """Test pool initialization and cleanup."""

    def test_init_pool_creates_instrumented_pool(self):
        """init_pool should wrap a ConnectionPool."""
        from ledger_auth.infrastructure.db.instrumentation import (
            InstrumentedConnectionPool,
        )
        from ledger_auth.infrastructure.db.pool import get_pool, init_pool

        with patch("ledger_auth.infrastructure.db.pool.ConnectionPool") as MockPool:
            result = init_pool("postgresql://test", min_size=2, max_size=10)

            MockPool.assert_called_once()
            kwargs = MockPool.call_args.kwargs
            assert kwargs["conninfo"] == "postgresql://test"
            assert kwargs["min_size"] == 2 and kwargs["max_size"] == 10

        assert isinstance(result, InstrumentedConnectionPool)
        assert get_pool() is result

    def test_init_pool_twice_raises_error(self):
        from ledger_auth.infrastructure.db.errors import PoolAlreadyInitializedError
        from ledger_auth.infrastructure.db.pool import init_pool

        with patch("ledger_auth.infrastructure.db.pool.ConnectionPool"):
            init_pool("postgresql://test", min_size=1, max_size=2)
            with pytest.raises(PoolAlreadyInitializedError):
                init_pool("postgresql://test", min_size=1, max_size=2)

    def test_get_pool_without_init_raises_error(self):
        from ledger_auth.crosscutting.exceptions import DatabaseError
        from ledger_auth.infrastructure.db.errors import PoolNotInitializedError
        from ledger_auth.infrastructure.db.pool import get_pool

        with pytest.raises(PoolNotInitializedError) as exc_info:
            get_pool()
        assert isinstance(exc_info.value, DatabaseError)

    def test_close_pool_is_idempotent(self):
        from ledger_auth.infrastructure.db.pool import close_pool, init_pool

        with patch("ledger_auth.infrastructure.db.pool.ConnectionPool") as MockPool:
            init_pool("postgresql://test", min_size=1, max_size=2)
            close_pool()
            close_pool()

            MockPool.return_value.close.assert_called_once()

    def test_configure_sets_statement_timeout(self):
        from ledger_auth.infrastructure.db.pool import _configure_connection

        conn = MagicMock()
        _configure_connection(conn)

        conn.execute.assert_called_once()
        assert "statement_timeout" in conn.execute.call_args.args[0]
        conn.commit.assert_called_once()


@pytest.mark.unit
class TestInstrumentation:
    @pytest.mark.parametrize(
        "sql,expected",
        [
            ("SELECT 1", "SELECT"),
            ("  update credentials SET used_at = %s", "UPDATE"),
            ("\n INSERT INTO users", "INSERT"),
            ("DELETE FROM credentials", "DELETE"),
            ("SET statement_timeout = 1", "SET"),
            ("WITH x AS (SELECT 1) SELECT * FROM x", "OTHER"),
            ("", "OTHER"),
        ],
    )
    def test_statement_kind(self, sql, expected):
        from ledger_auth.infrastructure.db.instrumentation import statement_kind

        assert statement_kind(sql) == expected

    def _inner_pool(self, conn):
        @contextmanager
        def connection():
            yield conn

        pool = MagicMock()
        pool.connection.side_effect = connection
        return pool

    def test_connection_runs_healthcheck_and_times_queries(self):
        from ledger_auth.infrastructure.db.instrumentation import (
            InstrumentedConnectionPool,
            TimedConnection,
        )

        conn = MagicMock()
        pool = InstrumentedConnectionPool(
            self._inner_pool(conn), slow_query_seconds=10.0, healthcheck=True
        )

        with patch(
            "ledger_auth.infrastructure.db.instrumentation.observe_db_query_duration"
        ) as observe:
            with pool.connection() as wrapped:
                assert isinstance(wrapped, TimedConnection)
                wrapped.execute("UPDATE credentials SET used_at = now()")
                wrapped.commit()

        assert conn.execute.call_args_list[0].args[0] == "SELECT 1"
        observe.assert_called_once()
        assert observe.call_args.args[0] == "UPDATE"
        conn.commit.assert_called_once()

    def test_failed_healthcheck_raises_connection_error(self):
        from ledger_auth.infrastructure.db.errors import DatabaseConnectionError
        from ledger_auth.infrastructure.db.instrumentation import (
            InstrumentedConnectionPool,
        )

        conn = MagicMock()
        conn.execute.side_effect = RuntimeError("server closed the connection")
        pool = InstrumentedConnectionPool(self._inner_pool(conn))

        with pytest.raises(DatabaseConnectionError):
            with pool.connection():
                pass

    def test_healthcheck_can_be_disabled(self):
        from ledger_auth.infrastructure.db.instrumentation import (
            InstrumentedConnectionPool,
        )

        conn = MagicMock()
        pool = InstrumentedConnectionPool(self._inner_pool(conn), healthcheck=False)

        with pool.connection():
            pass

        conn.execute.assert_not_called()
