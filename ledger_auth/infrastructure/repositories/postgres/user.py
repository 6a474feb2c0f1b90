"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user.py
============================================================
Class: PostgresUserRepository

Responsibilities:
  - Cargar identidades para autenticación (por email / por id).
  - Crear identidades y actualizar campos administrables
    (password, rol, módulos, asignaciones, perfil, is_active).
  - Ejecutar SQL parametrizado contra la tabla `users`.
  - Mapear filas crudas -> `User` validando UserRole / ModuleScope.
  - Exponer fallos consistentes vía `DatabaseError` con logging estructurado.

Collaborators:
  - psycopg_pool.ConnectionPool / infrastructure.db.pool.get_pool
  - psycopg.types.json.Json (resource_assignments como JSONB)
  - identity.users.User / identity.roles
  - crosscutting.exceptions.DatabaseError

Contrato de tabla `users`:
  id uuid PK, email text UNIQUE (lower), password_hash text, role text,
  is_active bool, name text, modules text[], resource_assignments jsonb,
  country_code text NULL, phone_number text NULL, created_at timestamptz,
  last_login timestamptz NULL

Constraints / Notes:
  - Retorna None cuando no existe el recurso.
  - Valor persistido fuera de UserRole / ModuleScope -> DatabaseError.
  - Orden estable en listados: created_at DESC, id DESC.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Optional
from uuid import UUID, uuid4

from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....identity.roles import ModuleScope, UserRole, parse_modules
from ....identity.users import CountryCode, User, normalize_assignments, normalize_email

# R: Lista explícita de columnas (contrato estable con el esquema).
_USER_COLUMNS = (
    "id, email, password_hash, role, is_active, name, modules, "
    "resource_assignments, country_code, phone_number, created_at, last_login"
)

_USER_ORDER_BY = "created_at DESC, id DESC"


def _row_to_user(row: tuple) -> User:
    """
    Convierte una fila de `users` a `User`.

    Casting estricto: role/módulo/país desconocidos -> DatabaseError.
    """
    try:
        role = UserRole(row[3])
        modules = parse_modules(row[6] or ())
        country = CountryCode(row[8]) if row[8] else None
    except ValueError as exc:
        raise DatabaseError(f"Invalid identity data in database: {exc}") from exc

    return User(
        id=row[0],
        email=row[1],
        password_hash=row[2],
        role=role,
        is_active=row[4],
        name=row[5] or "",
        modules=modules,
        resource_assignments=normalize_assignments(row[7]),
        country_code=country,
        phone_number=row[9],
        created_at=row[10],
        last_login=row[11],
    )


def _assignments_json(assignments: Mapping[str, Iterable[str]] | None) -> Json:
    return Json(
        {kind: sorted(ids) for kind, ids in normalize_assignments(assignments).items()}
    )


def _module_values(modules: Iterable[str | ModuleScope]) -> list[str]:
    return sorted(m.value for m in parse_modules(modules))


class PostgresUserRepository:
    """Repositorio PostgreSQL de identidades (tabla `users`)."""

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        # Pool inyectable (tests); si es None se usa el global.
        self._pool = pool

    def _get_pool(self):
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    # ------------------------------------------------------------
    # Helpers internos (errores/logging consistentes)
    # ------------------------------------------------------------
    def _fetchone(
        self,
        *,
        query: str,
        params: Iterable[object],
        log_msg: str,
        log_extra: dict[str, object],
    ) -> tuple | None:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchone()
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    def _fetchall(
        self,
        *,
        query: str,
        params: Iterable[object] = (),
        log_msg: str,
        log_extra: dict[str, object],
    ) -> list[tuple]:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get_user_by_email(self, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        row = self._fetchone(
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
            params=(normalized,),
            log_msg="PostgresUserRepository: get_user_by_email failed",
            log_extra={},
        )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        row = self._fetchone(
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            params=(user_id,),
            log_msg="PostgresUserRepository: get_user_by_id failed",
            log_extra={"user_id": str(user_id)},
        )
        return _row_to_user(row) if row else None

    def list_users(self, *, limit: int = 200, offset: int = 0) -> list[User]:
        if limit <= 0:
            return []
        offset = max(offset, 0)

        rows = self._fetchall(
            query=f"""
                SELECT {_USER_COLUMNS}
                FROM users
                ORDER BY {_USER_ORDER_BY}
                LIMIT %s OFFSET %s
            """,
            params=(limit, offset),
            log_msg="PostgresUserRepository: list_users failed",
            log_extra={"limit": limit, "offset": offset},
        )
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def create_user(
        self,
        *,
        email: str,
        password_hash: str,
        role: UserRole,
        name: str = "",
        modules: frozenset[ModuleScope] = frozenset(),
        resource_assignments: Mapping[str, frozenset[str]] | None = None,
        country_code: CountryCode | None = None,
        phone_number: str | None = None,
        is_active: bool = True,
    ) -> User:
        """Email duplicado -> uq_users_email -> DatabaseError."""
        user_id = uuid4()
        row = self._fetchone(
            query=f"""
                INSERT INTO users (
                    id, email, password_hash, role, is_active, name, modules,
                    resource_assignments, country_code, phone_number
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_USER_COLUMNS}
            """,
            params=(
                user_id,
                normalize_email(email),
                password_hash,
                role.value,
                is_active,
                name,
                _module_values(modules),
                _assignments_json(resource_assignments),
                country_code.value if country_code else None,
                phone_number,
            ),
            log_msg="PostgresUserRepository: create_user failed",
            log_extra={"user_id": str(user_id), "role": role.value},
        )
        if not row:
            raise DatabaseError(
                "PostgresUserRepository: create_user failed (no row returned)"
            )
        return _row_to_user(row)

    def update_user(
        self,
        user_id: UUID,
        *,
        name: str | None = None,
        password_hash: str | None = None,
        role: UserRole | None = None,
        modules: frozenset[ModuleScope] | None = None,
        resource_assignments: Mapping[str, frozenset[str]] | None = None,
        country_code: CountryCode | None = None,
        phone_number: str | None = None,
        is_active: bool | None = None,
    ) -> Optional[User]:
        """Construye SET solo con los campos presentes (SQL parametrizado)."""
        updates: list[str] = []
        params: list[object] = []

        if name is not None:
            updates.append("name = %s")
            params.append(name)
        if password_hash is not None:
            updates.append("password_hash = %s")
            params.append(password_hash)
        if role is not None:
            updates.append("role = %s")
            params.append(role.value)
        if modules is not None:
            updates.append("modules = %s")
            params.append(_module_values(modules))
        if resource_assignments is not None:
            updates.append("resource_assignments = %s")
            params.append(_assignments_json(resource_assignments))
        if country_code is not None:
            updates.append("country_code = %s")
            params.append(country_code.value)
        if phone_number is not None:
            updates.append("phone_number = %s")
            params.append(phone_number)
        if is_active is not None:
            updates.append("is_active = %s")
            params.append(is_active)

        if not updates:
            return self.get_user_by_id(user_id)

        params.append(user_id)

        # updates lo arma el código (nunca input de usuario).
        row = self._fetchone(
            query=f"""
                UPDATE users
                SET {", ".join(updates)}
                WHERE id = %s
                RETURNING {_USER_COLUMNS}
            """,
            params=params,
            log_msg="PostgresUserRepository: update_user failed",
            log_extra={"user_id": str(user_id), "updates": updates},
        )
        return _row_to_user(row) if row else None

    def set_user_active(self, user_id: UUID, is_active: bool) -> Optional[User]:
        return self.update_user(user_id, is_active=is_active)

    def update_user_password(
        self, user_id: UUID, password_hash: str
    ) -> Optional[User]:
        return self.update_user(user_id, password_hash=password_hash)

    def touch_last_login(self, user_id: UUID, at: datetime) -> None:
        self._fetchone(
            query="UPDATE users SET last_login = %s WHERE id = %s RETURNING id",
            params=(at, user_id),
            log_msg="PostgresUserRepository: touch_last_login failed",
            log_extra={"user_id": str(user_id)},
        )
