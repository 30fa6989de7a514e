"""
Async PostgreSQL client for notification history.

This module provides a PostgreSQL client for recording every notification
attempt and querying delivery history for statistics and SLA review.

Key Tables:
    - notification_attempts: One row per send, retries included

Example:
    >>> from carewatch.config.models import PostgresConnectionConfig
    >>> from carewatch.storage.postgres_client import PostgresClient
    >>>
    >>> client = PostgresClient(PostgresConnectionConfig())
    >>> await client.connect()
    >>> await client.ensure_schema()
    >>> await client.insert_attempt(attempt)
    >>> history = await client.query_attempts("carer-1", start, end)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional

import asyncpg
import structlog
from asyncpg import Connection, Pool, Record
from asyncpg.exceptions import (
    ConnectionDoesNotExistError,
    InterfaceError,
    PostgresError,
    TooManyConnectionsError,
)

from carewatch.config.models import PostgresConnectionConfig, PostgresStorageConfig
from carewatch.models.notifications import (
    NotificationAttempt,
    NotificationChannel,
    NotificationStatus,
)

logger = structlog.get_logger(__name__)


class PostgresClientError(Exception):
    """Base exception for PostgreSQL client errors."""

    pass


class PostgresConnectionException(PostgresClientError):
    """Raised when PostgreSQL connection fails."""

    pass


class PostgresOperationError(PostgresClientError):
    """Raised when a PostgreSQL operation fails."""

    pass


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS notification_attempts (
    id              TEXT PRIMARY KEY,
    alert_id        TEXT NOT NULL,
    recipient_id    TEXT NOT NULL,
    contact         TEXT NOT NULL,
    channel         TEXT NOT NULL,
    status          TEXT NOT NULL,
    attempt_number  INTEGER NOT NULL,
    retry_count     INTEGER NOT NULL,
    sent_at         TIMESTAMPTZ NOT NULL,
    delivered_at    TIMESTAMPTZ,
    failure_reason  TEXT,
    latency_ms      DOUBLE PRECISION NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_attempts_recipient_sent
    ON notification_attempts (recipient_id, sent_at DESC);
CREATE INDEX IF NOT EXISTS idx_attempts_alert
    ON notification_attempts (alert_id, recipient_id, channel);
"""


def _record_to_attempt(row: Record) -> NotificationAttempt:
    """Convert a notification_attempts row to a model."""
    return NotificationAttempt(
        id=row["id"],
        alert_id=row["alert_id"],
        recipient_id=row["recipient_id"],
        contact=row["contact"],
        channel=NotificationChannel(row["channel"]),
        status=NotificationStatus(row["status"]),
        attempt_number=row["attempt_number"],
        retry_count=row["retry_count"],
        sent_at=row["sent_at"],
        delivered_at=row["delivered_at"],
        failure_reason=row["failure_reason"],
        latency_ms=row["latency_ms"],
    )


class PostgresClient:
    """
    Async PostgreSQL client for notification history.

    Attributes:
        config: PostgreSQL connection configuration.
        storage_config: Retention settings.
        _pool: Connection pool for efficient connection reuse.
        _connected: Whether the client is connected.
    """

    # Maximum retries for transient errors
    MAX_RETRIES = 3

    # Retry delay in seconds
    RETRY_DELAY = 0.5

    def __init__(
        self,
        config: PostgresConnectionConfig,
        storage_config: Optional[PostgresStorageConfig] = None,
    ) -> None:
        """
        Initialize the PostgreSQL client.

        Args:
            config: PostgreSQL connection configuration containing URL and pool settings.
            storage_config: Optional retention configuration.
        """
        self.config = config
        self.storage_config = storage_config or PostgresStorageConfig()
        self._pool: Optional[Pool] = None
        self._connected: bool = False

        logger.info(
            "postgres_client_initialized",
            url=self._sanitize_url(config.url),
            pool_size=config.pool_size,
        )

    def _sanitize_url(self, url: str) -> str:
        """Sanitize URL for logging (remove password)."""
        if "@" in url:
            parts = url.split("@")
            if ":" in parts[0]:
                user_part = parts[0].rsplit(":", 1)[0]
                return f"{user_part}:***@{parts[1]}"
        return url

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected to PostgreSQL."""
        return self._connected and self._pool is not None

    async def connect(self) -> None:
        """
        Establish connection pool to PostgreSQL.

        Raises:
            PostgresConnectionException: If connection fails.
        """
        if self._connected:
            logger.warning("postgres_already_connected")
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.config.url,
                min_size=1,
                max_size=self.config.pool_size + self.config.max_overflow,
                command_timeout=self.config.pool_timeout,
                init=self._init_connection,
            )

            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            self._connected = True
            logger.info("postgres_connected", url=self._sanitize_url(self.config.url))

        except (PostgresError, OSError, asyncio.TimeoutError) as e:
            self._connected = False
            logger.error(
                "postgres_connection_failed",
                url=self._sanitize_url(self.config.url),
                error=str(e),
            )
            raise PostgresConnectionException(
                f"Failed to connect to PostgreSQL: {e}"
            ) from e

    async def _init_connection(self, conn: Connection) -> None:
        """Set timezone to UTC for consistent timestamps."""
        await conn.execute("SET timezone = 'UTC'")

    async def disconnect(self) -> None:
        """Close the connection pool. Safe to call multiple times."""
        if self._pool is not None:
            try:
                await self._pool.close()
            except Exception as e:
                logger.warning("postgres_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("postgres_disconnected")

    async def ping(self) -> bool:
        """Check PostgreSQL connection health."""
        if not self._pool:
            return False

        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.warning("postgres_ping_failed", error=str(e))
            return False

    @asynccontextmanager
    async def _acquire_connection(self) -> AsyncIterator[Connection]:
        """
        Acquire a connection from the pool with error handling.

        Raises:
            PostgresConnectionException: If not connected or pool exhausted.
        """
        if not self._connected or self._pool is None:
            raise PostgresConnectionException("PostgreSQL client is not connected")

        try:
            async with self._pool.acquire() as conn:
                yield conn
        except TooManyConnectionsError as e:
            logger.error("postgres_pool_exhausted", error=str(e))
            raise PostgresConnectionException(f"Connection pool exhausted: {e}") from e
        except (ConnectionDoesNotExistError, InterfaceError) as e:
            logger.error("postgres_connection_lost", error=str(e))
            self._connected = False
            raise PostgresConnectionException(f"Connection lost: {e}") from e

    async def _execute_with_retry(
        self,
        operation: str,
        func: Any,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Execute a database operation with retry logic for transient errors.

        Raises:
            PostgresOperationError: If all retries fail.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                return await func(*args, **kwargs)
            except (PostgresError, ConnectionDoesNotExistError, InterfaceError) as e:
                last_error = e
                if attempt < self.MAX_RETRIES - 1:
                    logger.warning(
                        "postgres_operation_retry",
                        operation=operation,
                        attempt=attempt + 1,
                        max_retries=self.MAX_RETRIES,
                        error=str(e),
                    )
                    await asyncio.sleep(self.RETRY_DELAY * (attempt + 1))
                else:
                    logger.error(
                        "postgres_operation_failed",
                        operation=operation,
                        error=str(e),
                    )

        raise PostgresOperationError(
            f"Operation '{operation}' failed after {self.MAX_RETRIES} attempts: {last_error}"
        )

    async def ensure_schema(self) -> None:
        """Create the notification_attempts table and indices if missing."""

        async def _create() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(SCHEMA_SQL)

        await self._execute_with_retry("ensure_schema", _create)
        logger.info("postgres_schema_ready")

    # =========================================================================
    # NOTIFICATION ATTEMPTS
    # =========================================================================

    async def insert_attempt(self, attempt: NotificationAttempt) -> None:
        """
        Insert one notification attempt.

        Re-inserting the same attempt id is a no-op.

        Raises:
            PostgresConnectionException: If not connected.
            PostgresOperationError: If the insert fails after retries.
        """

        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO notification_attempts (
                        id, alert_id, recipient_id, contact, channel, status,
                        attempt_number, retry_count, sent_at, delivered_at,
                        failure_reason, latency_ms
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    attempt.id,
                    attempt.alert_id,
                    attempt.recipient_id,
                    attempt.contact,
                    attempt.channel.value,
                    attempt.status.value,
                    attempt.attempt_number,
                    attempt.retry_count,
                    attempt.sent_at,
                    attempt.delivered_at,
                    attempt.failure_reason,
                    attempt.latency_ms,
                )

        await self._execute_with_retry("insert_attempt", _insert)

        logger.debug(
            "notification_attempt_inserted",
            attempt_id=attempt.id,
            alert_id=attempt.alert_id,
            channel=attempt.channel.value,
            status=attempt.status.value,
        )

    async def query_attempts(
        self,
        recipient_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> List[NotificationAttempt]:
        """
        Query a recipient's attempts in a time range, newest first.

        Args:
            recipient_id: Recipient user id.
            start_time: Range start (inclusive).
            end_time: Range end (inclusive).

        Returns:
            List[NotificationAttempt]: Matching attempts.
        """

        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT * FROM notification_attempts
                    WHERE recipient_id = $1 AND sent_at BETWEEN $2 AND $3
                    ORDER BY sent_at DESC
                    """,
                    recipient_id,
                    start_time,
                    end_time,
                )

        rows = await self._execute_with_retry("query_attempts", _query)
        return [_record_to_attempt(row) for row in rows]

    async def query_attempts_for_alert(self, alert_id: str) -> List[NotificationAttempt]:
        """Get every attempt made for an alert, oldest first."""

        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT * FROM notification_attempts
                    WHERE alert_id = $1
                    ORDER BY sent_at ASC, attempt_number ASC
                    """,
                    alert_id,
                )

        rows = await self._execute_with_retry("query_attempts_for_alert", _query)
        return [_record_to_attempt(row) for row in rows]

    async def purge_expired_attempts(self) -> int:
        """
        Delete attempts older than the retention period.

        Returns:
            int: Number of rows deleted.
        """
        days = self.storage_config.attempts_retention_days

        async def _purge() -> str:
            async with self._acquire_connection() as conn:
                return await conn.execute(
                    "DELETE FROM notification_attempts "
                    "WHERE sent_at < NOW() - make_interval(days => $1)",
                    days,
                )

        status = await self._execute_with_retry("purge_expired_attempts", _purge)
        deleted = int(status.split()[-1]) if status else 0
        logger.info("notification_attempts_purged", deleted=deleted, retention_days=days)
        return deleted


async def create_postgres_client(
    config: PostgresConnectionConfig,
    storage_config: Optional[PostgresStorageConfig] = None,
) -> PostgresClient:
    """
    Factory function to create and connect a PostgreSQL client.

    Raises:
        PostgresConnectionException: If connection fails.
    """
    client = PostgresClient(config, storage_config)
    await client.connect()
    return client
