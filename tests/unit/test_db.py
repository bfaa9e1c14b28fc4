"""Unit tests for the source store accessor, with psycopg2 mocked out."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from scripts.clerk_migration.config import DatabaseConfig
from scripts.clerk_migration.db import Database
from scripts.clerk_migration.errors import StoreUnavailable
from scripts.clerk_migration.models import SourceLogin, SourceUser

USER_ROW = {
    "id": 1, "email": "s@x.test", "first_name": "Sam", "last_name": "Seller",
    "password": "pw", "company": "Acme", "clerk_organization_id": None,
}
LOGIN_ROW = {
    "id": 5, "email": "l@x.test", "first_name": "Lee", "last_name": "Login",
    "password": "$2a$10$abc", "seller_id": 1,
}


@pytest.fixture()
def cursor() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def conn(cursor) -> MagicMock:
    c = MagicMock()
    c.closed = 0
    c.cursor.return_value.__enter__.return_value = cursor
    return c


@pytest.fixture()
def db(conn) -> Database:
    with patch("scripts.clerk_migration.db.psycopg2.pool.ThreadedConnectionPool") as pool_cls:
        pool_cls.return_value.getconn.return_value = conn
        database = Database(DatabaseConfig(url="postgresql://localhost/app"))
    return database


def test_connect_failure_raises_store_unavailable():
    with patch(
        "scripts.clerk_migration.db.psycopg2.pool.ThreadedConnectionPool",
        side_effect=psycopg2.OperationalError("could not connect"),
    ):
        with pytest.raises(StoreUnavailable, match="could not connect"):
            Database(DatabaseConfig(url="postgresql://nowhere/app"))


def test_fetch_users_orders_by_id_with_offset(db, cursor, conn):
    cursor.fetchall.return_value = [USER_ROW]

    users = db.fetch_users(40)

    sql, params = cursor.execute.call_args.args
    assert "FROM users ORDER BY id OFFSET %s" in sql
    assert params == (40,)
    assert users == [SourceUser.from_row(USER_ROW)]
    conn.commit.assert_called_once()


def test_fetch_users_rejects_negative_offset(db):
    with pytest.raises(ValueError):
        db.fetch_users(-1)


def test_fetch_logins_for_user(db, cursor):
    cursor.fetchall.return_value = [LOGIN_ROW]

    logins = db.fetch_logins_for_user(1)

    sql, params = cursor.execute.call_args.args
    assert "FROM logins WHERE seller_id = %s" in sql
    assert params == (1,)
    assert logins == [SourceLogin.from_row(LOGIN_ROW)]


def test_persist_organization_id_only_fills_empty_or_same(db, cursor, conn):
    cursor.rowcount = 1

    db.persist_organization_id(1, "org_1")

    sql, params = cursor.execute.call_args.args
    assert sql.strip().startswith("UPDATE users")
    assert "clerk_organization_id IS NULL" in sql
    assert params == ("org_1", 1, "org_1")
    conn.commit.assert_called_once()


def test_persist_is_repeatable(db, cursor):
    cursor.rowcount = 1
    db.persist_organization_id(1, "org_1")
    db.persist_organization_id(1, "org_1")
    assert cursor.execute.call_count == 2


def test_query_error_rolls_back_and_raises_store_unavailable(db, cursor, conn):
    cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

    with pytest.raises(StoreUnavailable, match="server closed"):
        db.fetch_logins_for_user(1)

    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_failed_rollback_still_raises_store_unavailable(db, cursor, conn):
    cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
    conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")

    with pytest.raises(StoreUnavailable, match="server closed"):
        db.persist_organization_id(1, "org_1")

    conn.rollback.assert_called_once()


def test_closed_connection_skips_rollback(db, cursor, conn):
    conn.closed = 2
    cursor.execute.side_effect = psycopg2.OperationalError("terminating connection")

    with pytest.raises(StoreUnavailable):
        db.fetch_users(0)

    conn.rollback.assert_not_called()
