"""Source records, gateway handles and run-scoped state."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from scripts.clerk_migration.migration_log import MigrationLog

USER_COLUMNS = [
    "id", "email", "first_name", "last_name", "password",
    "company", "clerk_organization_id",
]

LOGIN_COLUMNS = [
    "id", "email", "first_name", "last_name", "password", "seller_id",
]


@dataclass(frozen=True)
class SourceUser:
    """A row of the ``users`` table. Each becomes one Clerk organization."""

    id: int
    email: str
    first_name: str
    last_name: str
    password: str
    company: str
    clerk_organization_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SourceUser:
        return cls(**{c: row.get(c) for c in USER_COLUMNS})

    def with_organization(self, organization_id: str) -> SourceUser:
        """Return a copy carrying ``organization_id``; an existing id is kept."""
        if self.clerk_organization_id:
            return self
        return replace(self, clerk_organization_id=organization_id)


@dataclass(frozen=True)
class SourceLogin:
    """A row of the ``logins`` table. Each becomes one Clerk user."""

    id: int
    email: str
    first_name: str
    last_name: str
    password: str  # bcrypt digest
    seller_id: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SourceLogin:
        return cls(**{c: row.get(c) for c in LOGIN_COLUMNS})


@dataclass(frozen=True)
class IdentityHandle:
    id: str
    email: Optional[str] = None


@dataclass
class RunCounters:
    migrated: int = 0
    already_exists: int = 0
    users_processed: int = 0
    users_failed: int = 0
    logins_failed: int = 0
    organizations_created: int = 0
    rate_limit_retries: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class RunContext:
    """State owned by one migration run: the counters and the failure log."""

    log: MigrationLog
    counters: RunCounters = field(default_factory=RunCounters)
