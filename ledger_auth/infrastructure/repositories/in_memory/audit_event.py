"""
In-memory audit event repository for tests and local development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import List

from ....domain.audit import AuditEvent


class InMemoryAuditEventRepository:
    """In-memory implementation of AuditEventRepository."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: List[AuditEvent] = []

    def record_event(self, event: AuditEvent) -> None:
        if event.created_at is None:
            event.created_at = datetime.now(timezone.utc)
        with self._lock:
            self._events.append(event)

    def list_events(
        self,
        *,
        actor_id: str | None = None,
        action_prefix: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEvent]:
        """List events with filters, newest first."""
        with self._lock:
            results = list(self._events)

        if actor_id:
            # R: mismo criterio que Postgres (sin ":" => match por sufijo).
            if ":" in actor_id:
                results = [e for e in results if e.actor == actor_id]
            else:
                results = [e for e in results if e.actor.endswith(f":{actor_id}")]
        if action_prefix is not None:
            results = [e for e in results if e.action.startswith(action_prefix)]

        results.reverse()
        return results[max(offset, 0) : max(offset, 0) + max(limit, 0)]

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def actions(self) -> list[str]:
        """Recorded actions in insertion order (for testing)."""
        with self._lock:
            return [e.action for e in self._events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
