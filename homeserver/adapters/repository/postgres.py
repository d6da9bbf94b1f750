"""
PostgreSQL repository adapter - Implements RegistrationStore protocol.

This module provides the PostgreSQL implementation of the domain's
store port using psycopg3 with raw SQL.

Atomicity Design:
-----------------
1. **insert_account**: ``INSERT ... ON CONFLICT (user_id) DO NOTHING``. The
   primary key is the only uniqueness arbiter; of two concurrent inserts for
   one user ID exactly one reports a row.

2. **insert_or_replace_device_token**: device upsert plus token upsert on the
   ``UNIQUE (user_id, device_id)`` constraint in one transaction. Concurrent
   issuances for one device serialize on that index, so only the last token
   survives.

3. **Timeouts**: connection acquisition is bounded by the pool timeout and
   statements by ``statement_timeout`` (set on pool connections). Every
   psycopg error, including pool timeouts, surfaces as StorageFailure.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg_pool import ConnectionPool

from homeserver.domain.exceptions import StorageFailure
from homeserver.domain.ports import AccountKind, TokenOwner

logger = logging.getLogger(__name__)


class PostgresRegistrationStore:
    """
    Implements RegistrationStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool, timeout: float = 5.0) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
            timeout: Seconds to wait for a pooled connection
        """
        self._pool = pool
        self._timeout = timeout

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        """Borrow a connection; translate driver errors to StorageFailure."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                yield conn
        except psycopg.Error as e:
            logger.error("Storage operation failed: %s", e.__class__.__name__)
            raise StorageFailure("Storage backend unavailable") from e

    def check_username_exists(self, user_id: str) -> bool:
        sql = "SELECT 1 FROM users WHERE user_id = %s"

        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (user_id,))
            return cursor.fetchone() is not None

    def insert_account(
        self, user_id: str, kind: AccountKind, password_hash: str | None
    ) -> bool:
        """
        Atomically insert an account unless the user ID exists.

        Returns:
            True if inserted, False on collision
        """
        sql = """
            INSERT INTO users (user_id, kind, password_hash, created_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (user_id) DO NOTHING
        """

        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (user_id, kind.value, password_hash))
            conn.commit()
            return cursor.rowcount == 1

    def insert_or_replace_device_token(
        self, user_id: str, device_id: str, token: str, display_name: str | None
    ) -> None:
        """
        Upsert the device and bind the token, replacing the device's old token.

        Both statements run in one transaction.
        """
        device_sql = """
            INSERT INTO devices (user_id, device_id, display_name)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id, device_id) DO UPDATE
            SET display_name = COALESCE(EXCLUDED.display_name, devices.display_name)
        """

        token_sql = """
            INSERT INTO access_tokens (token, user_id, device_id, issued_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (user_id, device_id) DO UPDATE
            SET token = EXCLUDED.token,
                issued_at = NOW()
        """

        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(device_sql, (user_id, device_id, display_name))
            cursor.execute(token_sql, (token, user_id, device_id))
            conn.commit()

    def get_user_by_access_token(self, token: str) -> TokenOwner | None:
        sql = """
            SELECT t.user_id, t.device_id, u.kind
            FROM access_tokens t
            JOIN users u ON u.user_id = t.user_id
            WHERE t.token = %s
        """

        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (token,))
            row = cursor.fetchone()

        if row is None:
            return None
        return TokenOwner(user_id=row[0], device_id=row[1], is_guest=row[2] == AccountKind.GUEST.value)

    def ping(self) -> None:
        """Liveness probe used by the health endpoint."""
        with self._connection() as conn:
            conn.execute("SELECT 1")


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: homeserver/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
