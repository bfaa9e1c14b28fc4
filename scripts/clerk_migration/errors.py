"""Exception hierarchy for the migration utility."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class MigrationError(Exception):
    """Base exception for all migration errors."""


class ConfigError(MigrationError):
    """Raised when required configuration is missing or invalid."""


class StoreUnavailable(MigrationError):
    """Raised when the source PostgreSQL store cannot be read or written."""


class GatewayErrorKind(str, Enum):
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"


class GatewayError(MigrationError):
    """Raised by the identity gateway; ``kind`` drives the pipeline's reaction."""

    def __init__(
        self,
        message: str,
        kind: GatewayErrorKind = GatewayErrorKind.FATAL,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status
        # Set once the failure has been written to the run log
        self.logged = False

    @property
    def is_conflict(self) -> bool:
        return self.kind is GatewayErrorKind.CONFLICT

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is GatewayErrorKind.RATE_LIMITED
