import os
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Optional

import psycopg
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from donkee.config import Settings
from donkee.services.types import StoredRecord
from donkee.storage.errors import DuplicatePostError, StorageError

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = "id, tweet_id, text, likes, retweets, created_at, hashtags, ingested_at"


def _row_to_record(row) -> StoredRecord:
    return StoredRecord(
        id=row[0],
        platform_id=row[1],
        text=row[2],
        like_count=row[3],
        repost_count=row[4],
        created_at=row[5],
        hashtags=list(row[6] or []),
        ingested_at=row[7],
    )


class PostgresStore:
    """
    PostgreSQL-backed post store.

    Opened once before a run and closed after; nothing reopens it implicitly.
    The unique index on ``tweet_id`` is what makes concurrent writers safe.
    """

    def __init__(self, database_url: str, min_size: int = 1, max_size: int = 4):
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[ConnectionPool] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresStore":
        return cls(settings.database_url)

    def open(self) -> "PostgresStore":
        if self._pool is not None:
            return self
        try:
            self._pool = ConnectionPool(
                self.database_url,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=30,
                open=False,
            )
            self._pool.open(wait=True)
            self._init_schema()
        except psycopg.Error as e:
            logger.error(f"Failed to open database: {e}")
            self.close()
            raise StorageError(f"Could not connect to database: {e}") from e
        logger.info("Connected to PostgreSQL")
        return self

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    def __enter__(self) -> "PostgresStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _connection(self):
        if self._pool is None:
            raise StorageError("Store is not open")
        with self._pool.connection() as conn:
            yield conn

    def _init_schema(self) -> None:
        schema_path = os.path.join(os.path.dirname(__file__), "schemas.sql")
        with open(schema_path) as f:
            schema = f.read()
        with self._connection() as conn, conn.cursor() as c:
            c.execute(schema)

    def insert_post(self, record: StoredRecord) -> int:
        """
        Insert a post keyed by its platform id.

        Raises:
            DuplicatePostError: The post is already stored
            StorageError: Any other database failure
        """
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("""
                    INSERT INTO tweets
                    (tweet_id, text, likes, retweets, created_at, hashtags, ingested_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                """, (
                    record.platform_id, record.text, record.like_count, record.repost_count,
                    record.created_at, record.hashtags, record.ingested_at,
                ))
                return c.fetchone()[0]
        except psycopg.errors.UniqueViolation as e:
            raise DuplicatePostError(record.platform_id) from e
        except psycopg.Error as e:
            raise StorageError(f"Failed to store post {record.platform_id}: {e}") from e

    def get_post(self, platform_id: str) -> Optional[StoredRecord]:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute(f"SELECT {_RECORD_COLUMNS} FROM tweets WHERE tweet_id = %s", (platform_id,))
                row = c.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"Failed to read post {platform_id}: {e}") from e
        return _row_to_record(row) if row else None

    def find_reply_candidate(self, since: datetime) -> Optional[StoredRecord]:
        """Highest-engagement post created since ``since`` that Donkee has not replied to."""
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute(f"""
                    SELECT {_RECORD_COLUMNS}
                    FROM tweets t
                    WHERE t.created_at >= %s
                      AND NOT EXISTS (
                          SELECT 1 FROM posted_tweets p WHERE p.in_reply_to = t.tweet_id
                      )
                    ORDER BY t.likes DESC, t.retweets DESC
                    LIMIT 1
                """, (since,))
                row = c.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"Failed to find reply candidate: {e}") from e
        return _row_to_record(row) if row else None

    def record_posted_tweet(self, tweet_id: str, text: str, in_reply_to: Optional[str] = None,
                            api_response: Optional[Dict[str, Any]] = None) -> None:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("""
                    INSERT INTO posted_tweets (tweet_id, text, in_reply_to, api_response)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (tweet_id) DO NOTHING
                """, (tweet_id, text, in_reply_to, Jsonb(api_response) if api_response else None))
        except psycopg.Error as e:
            raise StorageError(f"Failed to record posted tweet {tweet_id}: {e}") from e

    def get_daily_post_count(self, day: date) -> int:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("SELECT count FROM daily_post_counts WHERE day = %s", (day,))
                row = c.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"Failed to read daily post count: {e}") from e
        return row[0] if row else 0

    def reserve_daily_post(self, day: date, limit: int) -> Optional[int]:
        """
        Take one posting slot for ``day`` in a single statement.

        Returns the new count, or None when ``limit`` slots are already taken.
        """
        if limit <= 0:
            return None
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("""
                    INSERT INTO daily_post_counts (day, count) VALUES (%s, 1)
                    ON CONFLICT (day) DO UPDATE SET count = daily_post_counts.count + 1
                    WHERE daily_post_counts.count < %s
                    RETURNING count
                """, (day, limit))
                row = c.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"Failed to update daily post count: {e}") from e
        return row[0] if row else None

    def release_daily_post(self, day: date) -> None:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute(
                    "UPDATE daily_post_counts SET count = count - 1 WHERE day = %s AND count > 0",
                    (day,),
                )
        except psycopg.Error as e:
            raise StorageError(f"Failed to release daily post slot: {e}") from e

    def health_check(self) -> bool:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("SELECT 1")
                return c.fetchone()[0] == 1
        except (psycopg.Error, StorageError) as e:
            logger.error(f"Health check failed: {e}")
            return False

    def get_stats(self) -> Dict[str, int]:
        try:
            with self._connection() as conn, conn.cursor() as c:
                c.execute("SELECT (SELECT COUNT(*) FROM tweets), (SELECT COUNT(*) FROM posted_tweets)")
                total_posts, posted = c.fetchone()
        except psycopg.Error as e:
            raise StorageError(f"Failed to read stats: {e}") from e
        return {"total_posts": total_posts, "posted_tweets": posted}
