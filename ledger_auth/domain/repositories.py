"""
CRC — domain/repositories.py

Name
- Repository Interfaces (Protocols)

Responsibilities
- Define persistence contracts (ports) for identities, credentials and audit.
- Keep identity/application code independent from PostgreSQL or in-memory stores.
- Enable dependency inversion and straightforward unit testing.

Collaborators
- identity.users: User
- domain.entities: Credential, TokenKind
- domain.audit: AuditEvent
- infrastructure.repositories: postgres_* and in_memory_* implementations

Constraints
- Pure interfaces only: no side effects, no SQL.
- "Not found" is None, never an exception.
- Storage failures raise crosscutting.exceptions.DatabaseError.

Notes
- CredentialRepository.mark_used is the compare-and-set commit point of the
  refresh exchange: it must succeed for exactly one caller.
"""

from datetime import datetime
from typing import Mapping, Optional, Protocol
from uuid import UUID

from ..identity.roles import ModuleScope, UserRole
from ..identity.users import CountryCode, User
from .audit import AuditEvent
from .entities import Credential


class UserRepository(Protocol):
    """R: Identity store."""

    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """R: Load an identity by id."""
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        """R: Load an identity by normalized (lowercase) email."""
        ...

    def list_users(self, *, limit: int = 200, offset: int = 0) -> list[User]:
        """R: Newest first."""
        ...

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
        """R: Insert a new identity (email must be unique)."""
        ...

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
        """R: Partial update; None fields are left untouched."""
        ...

    def set_user_active(self, user_id: UUID, is_active: bool) -> Optional[User]:
        ...

    def update_user_password(
        self, user_id: UUID, password_hash: str
    ) -> Optional[User]:
        ...

    def touch_last_login(self, user_id: UUID, at: datetime) -> None:
        ...


class CredentialRepository(Protocol):
    """R: Credential store (refresh/reset/verify tokens)."""

    def create(self, credential: Credential) -> Credential:
        ...

    def get_by_token_hash(self, token_hash: str) -> Optional[Credential]:
        """R: Any state (used/revoked/expired included)."""
        ...

    def find_unused_unrevoked(
        self, subject_id: UUID, token_hash: str
    ) -> Optional[Credential]:
        ...

    def mark_used(self, credential_id: UUID, at: datetime) -> bool:
        """R: Atomic mark-used-if-not-used-and-not-revoked. True only for the winner."""
        ...

    def mark_revoked(self, credential_id: UUID, at: datetime, reason: str) -> bool:
        """R: Idempotent. True if the record exists."""
        ...

    def revoke_all_for_subject(
        self, subject_id: UUID, at: datetime, reason: str
    ) -> int:
        """R: Revoke every unrevoked credential (used ones too). Returns how many changed."""
        ...

    def delete_expired(self, now: datetime) -> int:
        ...


class AuditEventRepository(Protocol):
    """R: Interface for audit event persistence."""

    def record_event(self, event: AuditEvent) -> None:
        """R: Persist an audit event."""
        ...

    def list_events(
        self,
        *,
        actor_id: str | None = None,
        action_prefix: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEvent]:
        """R: Fetch audit events with optional filters (newest first)."""
        ...
