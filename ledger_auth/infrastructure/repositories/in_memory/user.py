"""
============================================================
TARJETA CRC — infrastructure/repositories/in_memory/user.py
============================================================
Class: InMemoryUserRepository

Responsibilities:
  - Identity store en memoria (tests / local dev sin DATABASE_URL).
  - Replicar el contrato de PostgresUserRepository:
      - email único (case-insensitive, normalizado al persistir)
      - update parcial (None = sin cambio)
      - listado created_at DESC, id DESC
  - Rechazar duplicados con DatabaseError (igual que el unique de Postgres).

Collaborators:
  - identity.users.User (entidad inmutable; se reemplaza con dataclasses.replace)
  - domain.repositories.UserRepository (contrato)

Constraints / Notes:
  - Thread-safe: todo acceso bajo Lock.
  - Los datos se pierden al reiniciar el proceso.
============================================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Mapping, Optional
from uuid import UUID, uuid4

from ....crosscutting.exceptions import DatabaseError
from ....identity.roles import ModuleScope, UserRole, parse_modules
from ....identity.users import CountryCode, User, normalize_assignments, normalize_email


class InMemoryUserRepository:
    """Repositorio in-memory, thread-safe, para identidades."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._users: Dict[UUID, User] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _find_by_email(self, email: str) -> Optional[User]:
        # R: llamar solo con el lock tomado.
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    # =========================================================
    # Lectura
    # =========================================================
    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            return self._find_by_email(normalize_email(email))

    def list_users(self, *, limit: int = 200, offset: int = 0) -> list[User]:
        if limit <= 0:
            return []
        offset = max(offset, 0)
        with self._lock:
            users = sorted(
                self._users.values(),
                key=lambda u: (
                    u.created_at or datetime.min.replace(tzinfo=timezone.utc),
                    str(u.id),
                ),
                reverse=True,
            )
        return users[offset : offset + limit]

    # =========================================================
    # Escritura
    # =========================================================
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
        normalized = normalize_email(email)
        with self._lock:
            if self._find_by_email(normalized) is not None:
                raise DatabaseError(f"Duplicate email: {normalized}")

            user = User(
                id=uuid4(),
                email=normalized,
                password_hash=password_hash,
                role=role,
                is_active=is_active,
                name=name,
                modules=parse_modules(modules),
                resource_assignments=normalize_assignments(resource_assignments),
                country_code=country_code,
                phone_number=phone_number,
                created_at=self._now(),
            )
            self._users[user.id] = user
            return user

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
        changes: dict[str, object] = {}
        if name is not None:
            changes["name"] = name
        if password_hash is not None:
            changes["password_hash"] = password_hash
        if role is not None:
            changes["role"] = role
        if modules is not None:
            changes["modules"] = parse_modules(modules)
        if resource_assignments is not None:
            changes["resource_assignments"] = normalize_assignments(
                resource_assignments
            )
        if country_code is not None:
            changes["country_code"] = country_code
        if phone_number is not None:
            changes["phone_number"] = phone_number
        if is_active is not None:
            changes["is_active"] = is_active

        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            if not changes:
                return current
            updated = replace(current, **changes)
            self._users[user_id] = updated
            return updated

    def set_user_active(self, user_id: UUID, is_active: bool) -> Optional[User]:
        return self.update_user(user_id, is_active=is_active)

    def update_user_password(
        self, user_id: UUID, password_hash: str
    ) -> Optional[User]:
        return self.update_user(user_id, password_hash=password_hash)

    def touch_last_login(self, user_id: UUID, at: datetime) -> None:
        with self._lock:
            current = self._users.get(user_id)
            if current is not None:
                self._users[user_id] = replace(current, last_login=at)

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def clear(self) -> None:
        with self._lock:
            self._users.clear()
