"""Abstract capability surface of the external identity service."""

from __future__ import annotations

from abc import ABC, abstractmethod

from scripts.clerk_migration.models import IdentityHandle

DEFAULT_HASH_SCHEME = "bcrypt"
DEFAULT_MEMBER_ROLE = "basic_member"


class IdentityGateway(ABC):
    """Operations the pipeline needs from the identity service.

    Implementations raise GatewayError classified as CONFLICT (identity
    already exists), RATE_LIMITED or FATAL. Created objects are not rolled
    back when a later call fails.
    """

    @abstractmethod
    def create_organization(self, name: str, created_by_email: str) -> str:
        """Create an organization and return its id."""

    @abstractmethod
    def create_identity(
        self,
        email: str,
        first_name: str,
        last_name: str,
        credential_digest: str,
        hash_scheme: str = DEFAULT_HASH_SCHEME,
    ) -> IdentityHandle:
        """Create a user from an existing password digest."""

    @abstractmethod
    def create_membership(
        self,
        organization_id: str,
        identity: IdentityHandle,
        role: str = DEFAULT_MEMBER_ROLE,
    ) -> None:
        """Add ``identity`` to the organization with ``role``."""
