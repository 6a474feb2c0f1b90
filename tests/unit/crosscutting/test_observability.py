"""
Name: Observability Tests

Responsibilities:
  - Ensure logs redact tokens, passwords and secrets
  - Ensure metrics keep low cardinality
  - Ensure request context is attached to logs and cleared
  - Ensure audit emission is best-effort
"""

import json
import logging
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from ledger_auth.audit import ANONYMOUS_ACTOR, actor_for, emit_audit_event
from ledger_auth.context import (
    clear_context,
    get_context_dict,
    set_request_context,
    set_user_context,
)
from ledger_auth.crosscutting.logger import REDACTED, JSONFormatter
from ledger_auth.crosscutting.metrics import (
    _normalize_endpoint,
    _status_bucket,
    get_metrics_response,
    record_auth_decision,
    record_token_event,
)
from ledger_auth.domain.audit import AuditAction
from ledger_auth.identity.principal import Principal
from ledger_auth.identity.roles import ModuleScope, UserRole

pytestmark = pytest.mark.unit


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("ledger-auth", logging.INFO, __file__, 1, "evento", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_sensitive_keys_are_redacted(self):
        line = JSONFormatter().format(
            _record(
                refresh_token="eyJhbGciOi...",
                payload={"password": "hunter2", "email": "a@example.org"},
                subject_id="42",
            )
        )
        payload = json.loads(line)

        assert payload["refresh_token"] == REDACTED
        assert payload["payload"]["password"] == REDACTED
        assert payload["payload"]["email"] == "a@example.org"
        assert payload["subject_id"] == "42"
        assert "hunter2" not in line

    def test_request_context_is_included(self):
        set_request_context(request_id="req-1", method="POST", path="/api/v1/auth/login")
        set_user_context("user-7")
        try:
            payload = json.loads(JSONFormatter().format(_record()))
        finally:
            clear_context()

        assert payload["request_id"] == "req-1"
        assert payload["user_id"] == "user-7"
        assert get_context_dict() == {}


class TestMetrics:
    def test_endpoint_normalization(self):
        uid = uuid4()
        assert _normalize_endpoint(f"/api/v1/admin/users/{uid}/access") == (
            "/api/v1/admin/users/{id}/access"
        )
        assert _normalize_endpoint("/api/v1/wfp/cycles/c-77/beneficiaries") == (
            "/api/v1/wfp/cycles/{cycle_id}/beneficiaries"
        )

    @pytest.mark.parametrize(
        "code,bucket", [(200, "2xx"), (401, "4xx"), (503, "5xx"), (302, "other")]
    )
    def test_status_bucket(self, code, bucket):
        assert _status_bucket(code) == bucket

    def test_exposition_contains_auth_metrics(self):
        record_auth_decision(False, "MODULE_NOT_ACCESSIBLE")
        record_token_event("refresh_replay")

        body, content_type = get_metrics_response()
        text = body.decode()

        assert "text/plain" in content_type
        assert 'reason="MODULE_NOT_ACCESSIBLE"' in text
        assert 'event="refresh_replay"' in text


class TestAuditEmission:
    def _principal(self):
        return Principal(
            id=uuid4(), role=UserRole.WFP_ADMIN, modules=frozenset({ModuleScope.WFP})
        )

    def test_actor_format(self):
        principal = self._principal()
        assert actor_for(principal) == f"user:{principal.id}"
        assert actor_for(None) == ANONYMOUS_ACTOR

    def test_event_carries_principal_metadata(self, audit_repo):
        principal = self._principal()
        target = uuid4()

        emit_audit_event(
            audit_repo,
            action=AuditAction.ACCESS_UPDATED,
            principal=principal,
            target_id=target,
            metadata={"modules": frozenset({ModuleScope.DUBE, ModuleScope.WFP})},
        )

        (event,) = audit_repo.list_events()
        assert event.actor == f"user:{principal.id}"
        assert event.target_id == target
        assert event.metadata["role"] == "wfp_admin"
        assert event.metadata["modules"] == ["dube", "wfp"]

    def test_failing_repository_does_not_raise(self):
        repository = MagicMock()
        repository.record_event.side_effect = RuntimeError("audit store down")

        emit_audit_event(repository, action=AuditAction.LOGIN)

        repository.record_event.assert_called_once()

    def test_none_repository_is_noop(self):
        emit_audit_event(None, action=AuditAction.LOGIN)
