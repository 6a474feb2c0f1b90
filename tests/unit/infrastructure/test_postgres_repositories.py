"""
Name: PostgreSQL Repository Tests

Responsibilities:
  - Validate row mapping and strict casting
  - Validate the conditional UPDATE behind mark_used
  - Validate that driver failures surface as DatabaseError

Notes:
  - Offline: the pool is a MagicMock, no database is opened
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from ledger_auth.crosscutting.exceptions import DatabaseError
from ledger_auth.domain.audit import AuditEvent
from ledger_auth.domain.entities import TokenKind
from ledger_auth.identity.roles import ModuleScope, UserRole
from ledger_auth.infrastructure.repositories.postgres import (
    PostgresAuditEventRepository,
    PostgresCredentialRepository,
    PostgresUserRepository,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pool_with(cursor: MagicMock):
    conn = MagicMock()
    conn.execute.return_value = cursor

    @contextmanager
    def connection():
        yield conn

    pool = MagicMock()
    pool.connection.side_effect = connection
    return pool, conn


def _user_row(**overrides):
    row = {
        "id": uuid4(),
        "email": "agent@example.org",
        "password_hash": "hash",
        "role": "dube_field_agent",
        "is_active": True,
        "name": "Agent",
        "modules": ["dube"],
        "resource_assignments": {"merchant": ["m-1"]},
        "country_code": "KE",
        "phone_number": None,
        "created_at": NOW,
        "last_login": None,
    }
    row.update(overrides)
    return tuple(row.values())


@pytest.mark.unit
class TestPostgresUserRepository:
    def test_get_user_maps_row(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = _user_row()
        pool, conn = _pool_with(cursor)

        user = PostgresUserRepository(pool=pool).get_user_by_email(" Agent@Example.org ")

        assert user.role == UserRole.DUBE_FIELD_AGENT
        assert user.modules == {ModuleScope.DUBE}
        assert user.resource_assignments == {"merchant": frozenset({"m-1"})}
        assert conn.execute.call_args.args[1] == ("agent@example.org",)

    def test_unknown_role_is_database_error(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = _user_row(role="supervisor")
        pool, _ = _pool_with(cursor)

        with pytest.raises(DatabaseError):
            PostgresUserRepository(pool=pool).get_user_by_id(uuid4())

    def test_missing_user_is_none(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = None
        pool, _ = _pool_with(cursor)

        assert PostgresUserRepository(pool=pool).get_user_by_id(uuid4()) is None

    def test_update_builds_only_present_fields(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = _user_row(role="dube_admin")
        pool, conn = _pool_with(cursor)
        user_id = uuid4()

        PostgresUserRepository(pool=pool).update_user(
            user_id, role=UserRole.DUBE_ADMIN, is_active=False
        )

        query, params = conn.execute.call_args.args
        assert "role = %s" in query and "is_active = %s" in query
        assert "name = %s" not in query
        assert params == ("dube_admin", False, user_id)

    def test_driver_error_is_wrapped(self):
        pool = MagicMock()
        pool.connection.side_effect = RuntimeError("connection refused")

        with pytest.raises(DatabaseError):
            PostgresUserRepository(pool=pool).get_user_by_id(uuid4())

    def test_list_users_with_zero_limit_skips_query(self):
        pool = MagicMock()
        assert PostgresUserRepository(pool=pool).list_users(limit=0) == []
        pool.connection.assert_not_called()


@pytest.mark.unit
class TestPostgresCredentialRepository:
    def test_mark_used_is_conditional(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = (uuid4(),)
        pool, conn = _pool_with(cursor)
        repo = PostgresCredentialRepository(pool=pool)

        assert repo.mark_used(uuid4(), NOW) is True
        query = conn.execute.call_args.args[0]
        assert "used_at IS NULL" in query and "revoked_at IS NULL" in query

        cursor.fetchone.return_value = None
        assert repo.mark_used(uuid4(), NOW) is False

    def test_revoke_all_returns_rowcount(self):
        cursor = MagicMock()
        cursor.rowcount = 3
        pool, conn = _pool_with(cursor)

        assert (
            PostgresCredentialRepository(pool=pool).revoke_all_for_subject(
                uuid4(), NOW, "logout_all"
            )
            == 3
        )
        assert "revoked_at IS NULL" in conn.execute.call_args.args[0]

    def test_get_by_token_hash_maps_row(self):
        subject_id, session_id = uuid4(), uuid4()
        cursor = MagicMock()
        cursor.fetchone.return_value = (
            uuid4(), subject_id, "refresh", "h", session_id, NOW, NOW,
            None, NOW, "logout", "10.0.0.1", "pytest",
        )
        pool, _ = _pool_with(cursor)

        record = PostgresCredentialRepository(pool=pool).get_by_token_hash("h")

        assert record.kind == TokenKind.REFRESH
        assert record.subject_id == subject_id
        assert record.revoked and not record.used

    def test_driver_error_is_wrapped(self):
        pool = MagicMock()
        pool.connection.side_effect = RuntimeError("boom")

        with pytest.raises(DatabaseError):
            PostgresCredentialRepository(pool=pool).delete_expired(NOW)


@pytest.mark.unit
class TestPostgresAuditEventRepository:
    def test_list_events_filters(self):
        cursor = MagicMock()
        cursor.fetchall.return_value = []
        pool, conn = _pool_with(cursor)
        user_id = uuid4()

        PostgresAuditEventRepository(pool=pool).list_events(
            actor_id=str(user_id), action_prefix="admin.", limit=10
        )

        query, params = conn.execute.call_args.args
        assert "actor LIKE %s" in query and "action LIKE %s" in query
        assert params == (f"%:{user_id}", "admin.%", 10, 0)

    def test_record_event_failure_is_database_error(self):
        pool = MagicMock()
        pool.connection.side_effect = RuntimeError("boom")

        with pytest.raises(DatabaseError):
            PostgresAuditEventRepository(pool=pool).record_event(
                AuditEvent(id=uuid4(), actor="anonymous", action="auth.login_failed")
            )
