"""Source store access: connection pool, user/login reads, organization writeback."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

import psycopg2
import psycopg2.extras
import psycopg2.pool

from scripts.clerk_migration.config import DatabaseConfig
from scripts.clerk_migration.errors import StoreUnavailable
from scripts.clerk_migration.models import (
    LOGIN_COLUMNS,
    USER_COLUMNS,
    SourceLogin,
    SourceUser,
)

logger = logging.getLogger("clerk_migration.db")


class Database:
    """Thin wrapper around a ThreadedConnectionPool over the ``users``/``logins`` tables.

    Every psycopg2 failure surfaces as StoreUnavailable.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=config.min_connections,
                maxconn=config.max_connections,
                dsn=config.url,
            )
        except psycopg2.Error as exc:
            raise StoreUnavailable(f"Cannot connect to source database: {exc}") from exc

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as exc:
            raise StoreUnavailable(f"Cannot obtain database connection: {exc}") from exc
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a dict cursor inside an auto-commit/rollback transaction."""
        with self.connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield cur
                conn.commit()
            except psycopg2.Error as exc:
                self._rollback(conn)
                raise StoreUnavailable(str(exc).strip()) from exc
            except Exception:
                self._rollback(conn)
                raise

    @staticmethod
    def _rollback(conn) -> None:
        """Roll back, tolerating a connection the server already closed."""
        if conn.closed:
            return
        try:
            conn.rollback()
        except psycopg2.Error as exc:
            logger.warning("Rollback failed: %s", str(exc).strip())

    def fetch_users(self, offset: int = 0) -> list[SourceUser]:
        """All users ordered by id, skipping the first ``offset`` rows."""
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        with self.transaction() as cur:
            cur.execute(
                f"SELECT {', '.join(USER_COLUMNS)} FROM users ORDER BY id OFFSET %s",
                (offset,),
            )
            rows = cur.fetchall()
        logger.info("Fetched %d users (offset %d)", len(rows), offset)
        return [SourceUser.from_row(r) for r in rows]

    def fetch_logins_for_user(self, user_id: int) -> list[SourceLogin]:
        with self.transaction() as cur:
            cur.execute(
                f"SELECT {', '.join(LOGIN_COLUMNS)} FROM logins WHERE seller_id = %s",
                (user_id,),
            )
            rows = cur.fetchall()
        return [SourceLogin.from_row(r) for r in rows]

    def persist_organization_id(self, user_id: int, organization_id: str) -> None:
        """Record the Clerk organization for a user.

        Safe to repeat with the same value. A different id that is already
        stored is left untouched.
        """
        with self.transaction() as cur:
            cur.execute(
                """UPDATE users
                   SET clerk_organization_id = %s
                   WHERE id = %s
                     AND (clerk_organization_id IS NULL
                          OR clerk_organization_id = %s)""",
                (organization_id, user_id, organization_id),
            )
            updated = cur.rowcount
        if updated == 0:
            logger.warning(
                "Organization id not written for user %s (missing row or different id stored)",
                user_id,
                extra={"user_id": user_id, "organization_id": organization_id},
            )
