"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/credential.py
============================================================
Class: PostgresCredentialRepository

Responsibilities:
  - Persistir credenciales single-use (refresh/reset/verify) por hash.
  - mark_used como UPDATE condicional (compare-and-set en una sola sentencia).
  - Revocar individual / por sujeto y purgar expirados.

Collaborators:
  - psycopg_pool.ConnectionPool / infrastructure.db.pool.get_pool
  - domain.entities.Credential / TokenKind
  - crosscutting.exceptions.DatabaseError

Contrato de tabla `credentials`:
  id uuid PK, subject_id uuid FK users(id), kind text, token_hash text UNIQUE,
  session_id uuid, issued_at timestamptz, expires_at timestamptz,
  used_at timestamptz NULL, revoked_at timestamptz NULL, revoked_reason text NULL,
  ip_address text NULL, user_agent text NULL
  (índices: token_hash, subject_id, expires_at)

Constraints / Notes:
  - Nunca se loguea token_hash.
  - La atomicidad de mark_used la da Postgres (row lock del UPDATE).
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.entities import Credential, TokenKind

_CREDENTIAL_COLUMNS = (
    "id, subject_id, kind, token_hash, session_id, issued_at, expires_at, "
    "used_at, revoked_at, revoked_reason, ip_address, user_agent"
)


def _row_to_credential(row: tuple) -> Credential:
    try:
        kind = TokenKind(row[2])
    except ValueError as exc:
        raise DatabaseError(f"Invalid credential kind in database: {row[2]}") from exc

    return Credential(
        id=row[0],
        subject_id=row[1],
        kind=kind,
        token_hash=row[3],
        session_id=row[4],
        issued_at=row[5],
        expires_at=row[6],
        used_at=row[7],
        revoked_at=row[8],
        revoked_reason=row[9],
        ip_address=row[10],
        user_agent=row[11],
    )


class PostgresCredentialRepository:
    """Repositorio PostgreSQL del Credential Store."""

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        self._pool = pool

    def _get_pool(self):
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def _execute(
        self,
        *,
        query: str,
        params: Iterable[object],
        fetch: str,
        log_msg: str,
        log_extra: dict[str, object],
    ):
        """fetch: "one" | "all" | "rowcount"."""
        try:
            with self._get_pool().connection() as conn:
                cursor = conn.execute(query, tuple(params))
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return cursor.rowcount
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def create(self, credential: Credential) -> Credential:
        row = self._execute(
            query=f"""
                INSERT INTO credentials ({_CREDENTIAL_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_CREDENTIAL_COLUMNS}
            """,
            params=(
                credential.id,
                credential.subject_id,
                credential.kind.value,
                credential.token_hash,
                credential.session_id,
                credential.issued_at,
                credential.expires_at,
                credential.used_at,
                credential.revoked_at,
                credential.revoked_reason,
                credential.ip_address,
                credential.user_agent,
            ),
            fetch="one",
            log_msg="PostgresCredentialRepository: create failed",
            log_extra={
                "credential_id": str(credential.id),
                "subject_id": str(credential.subject_id),
                "kind": credential.kind.value,
            },
        )
        if not row:
            raise DatabaseError(
                "PostgresCredentialRepository: create failed (no row returned)"
            )
        return _row_to_credential(row)

    def mark_used(self, credential_id: UUID, at: datetime) -> bool:
        """Compare-and-set: solo una sentencia concurrente obtiene la fila."""
        row = self._execute(
            query="""
                UPDATE credentials
                SET used_at = %s
                WHERE id = %s AND used_at IS NULL AND revoked_at IS NULL
                RETURNING id
            """,
            params=(at, credential_id),
            fetch="one",
            log_msg="PostgresCredentialRepository: mark_used failed",
            log_extra={"credential_id": str(credential_id)},
        )
        return row is not None

    def mark_revoked(self, credential_id: UUID, at: datetime, reason: str) -> bool:
        # COALESCE conserva la primera revocación (idempotente).
        row = self._execute(
            query="""
                UPDATE credentials
                SET revoked_at = COALESCE(revoked_at, %s),
                    revoked_reason = COALESCE(revoked_reason, %s)
                WHERE id = %s
                RETURNING id
            """,
            params=(at, reason, credential_id),
            fetch="one",
            log_msg="PostgresCredentialRepository: mark_revoked failed",
            log_extra={"credential_id": str(credential_id), "reason": reason},
        )
        return row is not None

    def revoke_all_for_subject(
        self, subject_id: UUID, at: datetime, reason: str
    ) -> int:
        return self._execute(
            query="""
                UPDATE credentials
                SET revoked_at = %s, revoked_reason = %s
                WHERE subject_id = %s AND revoked_at IS NULL
            """,
            params=(at, reason, subject_id),
            fetch="rowcount",
            log_msg="PostgresCredentialRepository: revoke_all_for_subject failed",
            log_extra={"subject_id": str(subject_id), "reason": reason},
        )

    def delete_expired(self, now: datetime) -> int:
        return self._execute(
            query="DELETE FROM credentials WHERE expires_at <= %s",
            params=(now,),
            fetch="rowcount",
            log_msg="PostgresCredentialRepository: delete_expired failed",
            log_extra={},
        )

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get_by_token_hash(self, token_hash: str) -> Optional[Credential]:
        row = self._execute(
            query=f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials WHERE token_hash = %s",
            params=(token_hash,),
            fetch="one",
            log_msg="PostgresCredentialRepository: get_by_token_hash failed",
            log_extra={},
        )
        return _row_to_credential(row) if row else None

    def find_unused_unrevoked(
        self, subject_id: UUID, token_hash: str
    ) -> Optional[Credential]:
        row = self._execute(
            query=f"""
                SELECT {_CREDENTIAL_COLUMNS}
                FROM credentials
                WHERE subject_id = %s
                  AND token_hash = %s
                  AND used_at IS NULL
                  AND revoked_at IS NULL
            """,
            params=(subject_id, token_hash),
            fetch="one",
            log_msg="PostgresCredentialRepository: find_unused_unrevoked failed",
            log_extra={"subject_id": str(subject_id)},
        )
        return _row_to_credential(row) if row else None
