"""Migration pipeline: sellers to Clerk organizations, logins to Clerk users.

Per user the flow is ensure organization -> load logins -> process each
login. A rate-limited call restarts the whole user after a fixed delay,
except membership creation, which is retried in place for the Clerk user
already created. Restarting rather than resuming mid-list is only safe
because the identity service answers a repeated user creation with a conflict instead
of creating a duplicate; keep that coupling if the gateway is replaced.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from scripts.clerk_migration.config import PacingConfig
from scripts.clerk_migration.errors import GatewayError, StoreUnavailable
from scripts.clerk_migration.gateway import IdentityGateway
from scripts.clerk_migration.models import (
    IdentityHandle,
    RunContext,
    RunCounters,
    SourceLogin,
    SourceUser,
)

logger = logging.getLogger("clerk_migration.pipeline")


class SourceStore(Protocol):
    def fetch_users(self, offset: int = 0) -> list[SourceUser]: ...

    def fetch_logins_for_user(self, user_id: int) -> list[SourceLogin]: ...

    def persist_organization_id(self, user_id: int, organization_id: str) -> None: ...


class MigrationPipeline:
    def __init__(
        self,
        store: SourceStore,
        gateway: IdentityGateway,
        context: RunContext,
        pacing: Optional[PacingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.context = context
        self.pacing = pacing or PacingConfig()
        self._sleep = sleep

    @property
    def counters(self) -> RunCounters:
        return self.context.counters

    def run(self, offset: int = 0) -> RunCounters:
        """Migrate every user from ``offset`` on. StoreUnavailable aborts the run."""
        users = self.store.fetch_users(offset)
        logger.info("Found %d users to process", len(users))

        for index, user in enumerate(users, start=offset + 1):
            logger.info(
                "Processing user %s (%d of %d)", user.id, index, offset + len(users),
                extra={"user_id": user.id},
            )
            self.process_user(user)

        logger.info("Migration complete: %s", self.counters.as_dict())
        return self.counters

    def process_user(self, user: SourceUser) -> bool:
        """Migrate one user and its logins. Returns False if the user was abandoned."""
        attempt = 0
        while True:
            try:
                organization_id, user = self.ensure_organization(user)
                for login in self.store.fetch_logins_for_user(user.id):
                    logger.debug(
                        "Processing login %s for user %s", login.id, user.id,
                        extra={"user_id": user.id, "login_id": login.id},
                    )
                    self.process_login(login, organization_id)
                    self._sleep(self.pacing.inter_login_delay_s)
            except StoreUnavailable:
                raise
            except GatewayError as exc:
                if not exc.is_rate_limited:
                    self._fail_user(user, exc.message, already_logged=exc.logged)
                    return False
                attempt += 1
                limit = self.pacing.max_rate_limit_retries
                if limit is not None and attempt > limit:
                    self._fail_user(user, f"Rate limit retries exhausted after {limit} attempts")
                    return False
                self.counters.rate_limit_retries += 1
                delay = self.pacing.rate_limit_retry_delay_s
                logger.warning(
                    "Rate limit reached for user %s, waiting %.1fs before restarting",
                    user.id, delay,
                    extra={"user_id": user.id, "attempt": attempt, "delay_s": delay},
                )
                self._sleep(delay)
                continue
            except Exception as exc:
                logger.exception("Unexpected error processing user %s", user.id,
                                 extra={"user_id": user.id})
                self._fail_user(user, str(exc))
                return False

            self.counters.users_processed += 1
            return True

    def ensure_organization(self, user: SourceUser) -> tuple[str, SourceUser]:
        """Return the user's organization id, creating and persisting it if missing.

        The returned user carries the id, so a restarted attempt reuses it.
        """
        if user.clerk_organization_id:
            return user.clerk_organization_id, user

        try:
            organization_id = self.gateway.create_organization(user.company, user.email)
        except GatewayError as exc:
            if not exc.is_rate_limited:
                self.context.log.user_failed(
                    user.id, f"Failed to create organization: {exc.message}"
                )
                exc.logged = True
            raise

        self.counters.organizations_created += 1
        logger.info(
            "Created organization %s for user %s", organization_id, user.id,
            extra={"user_id": user.id, "organization_id": organization_id},
        )
        try:
            self.store.persist_organization_id(user.id, organization_id)
        except StoreUnavailable as exc:
            self.context.log.organization_not_persisted(user.id, organization_id, str(exc))
            raise
        return organization_id, user.with_organization(organization_id)

    def process_login(self, login: SourceLogin, organization_id: str) -> bool:
        """Create the Clerk user for ``login`` and add it to the organization.

        Returns True when the login was migrated. A rate-limited user creation
        propagates so the caller can restart the user; any other non-conflict
        error propagates so the caller abandons the user. Once the Clerk user
        exists, a rate-limited membership is retried here for the same user,
        because a restart would only see a conflict and never link it.
        """
        if not organization_id:
            raise ValueError(f"Login {login.id} has no resolved organization")

        log = self.context.log
        try:
            identity = self.gateway.create_identity(
                login.email, login.first_name, login.last_name, login.password,
            )
        except GatewayError as exc:
            if not exc.is_conflict:
                raise
            log.login_exists(login.id)
            self.counters.already_exists += 1
            return False

        try:
            self._create_membership(login, organization_id, identity)
        except GatewayError as exc:
            log.membership_missing(login.id, identity.id, organization_id, exc.message)
            self.counters.logins_failed += 1
            return False

        self.counters.migrated += 1
        return True

    def _create_membership(
        self, login: SourceLogin, organization_id: str, identity: IdentityHandle
    ) -> None:
        """Add ``identity`` to the organization, backing off on rate limits."""
        attempt = 0
        while True:
            try:
                self.gateway.create_membership(organization_id, identity)
                return
            except GatewayError as exc:
                if not exc.is_rate_limited:
                    raise
                attempt += 1
                limit = self.pacing.max_rate_limit_retries
                if limit is not None and attempt > limit:
                    raise GatewayError(
                        f"rate limit retries exhausted after {limit} attempts",
                        exc.kind, exc.status,
                    ) from exc
                self.counters.rate_limit_retries += 1
                delay = self.pacing.rate_limit_retry_delay_s
                logger.warning(
                    "Rate limited adding Clerk user %s to %s, waiting %.1fs",
                    identity.id, organization_id, delay,
                    extra={"login_id": login.id, "organization_id": organization_id,
                           "attempt": attempt, "delay_s": delay},
                )
                self._sleep(delay)

    def _fail_user(self, user: SourceUser, message: str, already_logged: bool = False) -> None:
        self.counters.users_failed += 1
        if not already_logged:
            self.context.log.user_failed(user.id, message)
        logger.error("User %s failed: %s", user.id, message, extra={"user_id": user.id})
