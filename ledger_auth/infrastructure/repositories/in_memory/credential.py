"""
============================================================
TARJETA CRC — infrastructure/repositories/in_memory/credential.py
============================================================
Class: InMemoryCredentialRepository

Responsibilities:
  - Credential store en memoria (refresh/reset/verify como hash).
  - mark_used atómico: compare-and-set bajo Lock (un solo ganador).
  - Revocación individual y masiva por sujeto; purga de expirados.

Collaborators:
  - domain.entities.Credential
  - domain.repositories.CredentialRepository (contrato)
  - identity.tokens.TokenService (único consumidor)

Constraints / Notes:
  - Índice secundario token_hash -> id para lookup O(1).
  - Credential es inmutable: los cambios reemplazan el registro.
============================================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Dict, Optional
from uuid import UUID

from ....crosscutting.exceptions import DatabaseError
from ....domain.entities import Credential


class InMemoryCredentialRepository:
    """Repositorio in-memory, thread-safe, de credenciales single-use."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: Dict[UUID, Credential] = {}
        self._by_hash: Dict[str, UUID] = {}

    def create(self, credential: Credential) -> Credential:
        with self._lock:
            if credential.token_hash in self._by_hash:
                raise DatabaseError("Duplicate credential token hash")
            self._records[credential.id] = credential
            self._by_hash[credential.token_hash] = credential.id
            return credential

    def get_by_token_hash(self, token_hash: str) -> Optional[Credential]:
        with self._lock:
            credential_id = self._by_hash.get(token_hash)
            return self._records.get(credential_id) if credential_id else None

    def find_unused_unrevoked(
        self, subject_id: UUID, token_hash: str
    ) -> Optional[Credential]:
        record = self.get_by_token_hash(token_hash)
        if (
            record is None
            or record.subject_id != subject_id
            or record.used
            or record.revoked
        ):
            return None
        return record

    def mark_used(self, credential_id: UUID, at: datetime) -> bool:
        """Compare-and-set: True solo si estaba unused y unrevoked."""
        with self._lock:
            record = self._records.get(credential_id)
            if record is None or record.used or record.revoked:
                return False
            self._records[credential_id] = replace(record, used_at=at)
            return True

    def mark_revoked(self, credential_id: UUID, at: datetime, reason: str) -> bool:
        with self._lock:
            record = self._records.get(credential_id)
            if record is None:
                return False
            if not record.revoked:
                self._records[credential_id] = replace(
                    record, revoked_at=at, revoked_reason=reason
                )
            return True

    def revoke_all_for_subject(
        self, subject_id: UUID, at: datetime, reason: str
    ) -> int:
        count = 0
        with self._lock:
            for credential_id, record in list(self._records.items()):
                if record.subject_id != subject_id or record.revoked:
                    continue
                self._records[credential_id] = replace(
                    record, revoked_at=at, revoked_reason=reason
                )
                count += 1
        return count

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [r for r in self._records.values() if r.is_expired(now)]
            for record in expired:
                del self._records[record.id]
                self._by_hash.pop(record.token_hash, None)
        return len(expired)

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def all_for_subject(self, subject_id: UUID) -> list[Credential]:
        with self._lock:
            return [r for r in self._records.values() if r.subject_id == subject_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._by_hash.clear()
