"""
In-memory storage backend as an alternative to PostgreSQL.

This allows the bot to run without a database (USE_POSTGRES=false) and backs
the test suite. Nothing survives a restart.
"""

from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
import threading
from donkee.services.types import StoredRecord
from donkee.storage.errors import DuplicatePostError
from donkee.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryStore:
    """In-memory post store using Python data structures."""

    def __init__(self):
        self._lock = threading.Lock()
        self._posts: Dict[int, StoredRecord] = {}
        self._post_counter = 1
        self._post_index: Dict[str, int] = {}  # platform_id -> pk
        self._posted: Dict[str, Dict[str, Any]] = {}
        self._daily_counts: Dict[date, int] = {}
        logger.info("Initialized in-memory storage backend")

    def open(self) -> "InMemoryStore":
        return self

    def close(self) -> None:
        pass

    def __enter__(self) -> "InMemoryStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def insert_post(self, record: StoredRecord) -> int:
        with self._lock:
            if record.platform_id in self._post_index:
                raise DuplicatePostError(record.platform_id)

            pk = self._post_counter
            self._post_counter += 1
            self._posts[pk] = record.model_copy(update={"id": pk})
            self._post_index[record.platform_id] = pk
            logger.debug(f"Created new post {pk} ({record.platform_id})")
            return pk

    def get_post(self, platform_id: str) -> Optional[StoredRecord]:
        with self._lock:
            pk = self._post_index.get(platform_id)
            return self._posts[pk] if pk is not None else None

    def all_posts(self) -> List[StoredRecord]:
        with self._lock:
            return list(self._posts.values())

    def find_reply_candidate(self, since: datetime) -> Optional[StoredRecord]:
        with self._lock:
            replied = {p["in_reply_to"] for p in self._posted.values() if p["in_reply_to"]}
            candidates = [
                r for r in self._posts.values()
                if r.created_at >= since and r.platform_id not in replied
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.like_count, r.repost_count))

    def record_posted_tweet(self, tweet_id: str, text: str, in_reply_to: Optional[str] = None,
                            api_response: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self._posted.setdefault(tweet_id, {
                "tweet_id": tweet_id,
                "text": text,
                "in_reply_to": in_reply_to,
                "posted_at": datetime.now(timezone.utc),
                "api_response": api_response,
            })

    def posted_tweets(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._posted.values())

    def get_daily_post_count(self, day: date) -> int:
        with self._lock:
            return self._daily_counts.get(day, 0)

    def reserve_daily_post(self, day: date, limit: int) -> Optional[int]:
        """Take one posting slot for ``day``. Returns the new count, or None when the budget is spent."""
        with self._lock:
            count = self._daily_counts.get(day, 0)
            if count >= limit:
                return None
            self._daily_counts[day] = count + 1
            return count + 1

    def release_daily_post(self, day: date) -> None:
        with self._lock:
            if self._daily_counts.get(day, 0) > 0:
                self._daily_counts[day] -= 1

    def health_check(self) -> bool:
        return True

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "total_posts": len(self._posts),
                "posted_tweets": len(self._posted),
            }

    def clear(self):
        """Clear all data (useful for testing)."""
        with self._lock:
            self._posts.clear()
            self._post_index.clear()
            self._posted.clear()
            self._daily_counts.clear()
            self._post_counter = 1
            logger.info("Cleared all in-memory storage")
