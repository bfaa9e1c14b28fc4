"""Unit test configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock

import pytest

from scripts.clerk_migration.config import PacingConfig
from scripts.clerk_migration.errors import GatewayError, GatewayErrorKind
from scripts.clerk_migration.gateway import IdentityGateway
from scripts.clerk_migration.migration_log import MigrationLog
from scripts.clerk_migration.models import (
    IdentityHandle,
    RunContext,
    SourceLogin,
    SourceUser,
)
from scripts.clerk_migration.pipeline import MigrationPipeline

RUN_STARTED_AT = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


def conflict() -> GatewayError:
    return GatewayError("That email address is taken.", GatewayErrorKind.CONFLICT, 422)


def rate_limited() -> GatewayError:
    return GatewayError("Rate limit exceeded", GatewayErrorKind.RATE_LIMITED, 429)


def fatal(message: str = "boom") -> GatewayError:
    return GatewayError(message, GatewayErrorKind.FATAL, 400)


class FakeStore:
    """In-memory stand-in for the ``users``/``logins`` tables."""

    def __init__(self, users=None, logins=None) -> None:
        self.users: list[SourceUser] = list(users or [])
        self.logins: list[SourceLogin] = list(logins or [])
        self.persist_calls: list[tuple[int, str]] = []
        self.login_fetches: list[int] = []

    def fetch_users(self, offset: int = 0) -> list[SourceUser]:
        return sorted(self.users, key=lambda u: u.id)[offset:]

    def fetch_logins_for_user(self, user_id: int) -> list[SourceLogin]:
        self.login_fetches.append(user_id)
        return [l for l in self.logins if l.seller_id == user_id]

    def persist_organization_id(self, user_id: int, organization_id: str) -> None:
        self.persist_calls.append((user_id, organization_id))
        self.users = [
            u.with_organization(organization_id) if u.id == user_id else u
            for u in self.users
        ]


def make_user(
    user_id: int = 1,
    company: str = "Acme",
    organization_id: Optional[str] = None,
) -> SourceUser:
    return SourceUser(
        id=user_id,
        email=f"seller{user_id}@example.com",
        first_name="Sam",
        last_name="Seller",
        password="$2a$10$seller",
        company=company,
        clerk_organization_id=organization_id,
    )


def make_login(login_id: int, seller_id: int = 1) -> SourceLogin:
    return SourceLogin(
        id=login_id,
        email=f"login{login_id}@example.com",
        first_name="Lee",
        last_name=f"Login{login_id}",
        password=f"$2a$10$login{login_id}",
        seller_id=seller_id,
    )


@pytest.fixture()
def gateway() -> MagicMock:
    """Gateway double that succeeds by default."""
    gw = MagicMock(spec=IdentityGateway)
    gw.create_organization.return_value = "org_1"
    gw.create_identity.side_effect = lambda email, *a, **kw: IdentityHandle(
        id=f"user_{email}", email=email
    )
    gw.create_membership.return_value = None
    return gw


@pytest.fixture()
def migration_log(tmp_path) -> MigrationLog:
    return MigrationLog(tmp_path, started_at=RUN_STARTED_AT)


@pytest.fixture()
def context(migration_log) -> RunContext:
    return RunContext(log=migration_log)


@pytest.fixture()
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def pacing() -> PacingConfig:
    return PacingConfig(inter_login_delay_ms=1000, rate_limit_retry_delay_ms=10000)


@pytest.fixture()
def make_pipeline(gateway, context, pacing, sleep):
    def _make(store: FakeStore, **kwargs) -> MigrationPipeline:
        return MigrationPipeline(
            store,
            kwargs.get("gateway", gateway),
            kwargs.get("context", context),
            kwargs.get("pacing", pacing),
            sleep=sleep,
        )

    return _make
