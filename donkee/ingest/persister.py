import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from donkee.services.types import PersistResult, RawItem, StoredRecord
from donkee.storage.errors import DuplicatePostError, StorageError

logger = logging.getLogger(__name__)


def to_record(item: RawItem, ingested_at: Optional[datetime] = None) -> StoredRecord:
    """Canonical stored form of a fetched post."""
    ingested_at = ingested_at or datetime.now(timezone.utc)
    return StoredRecord(
        platform_id=item.platform_id,
        text=item.text,
        like_count=item.like_count or 0,
        repost_count=item.repost_count or 0,
        created_at=item.created_at or ingested_at,
        hashtags=list(item.hashtags or []),
        ingested_at=ingested_at,
    )


class Persister:
    """Writes fetched posts to a store, one item at a time, without retrying."""

    def __init__(self, store, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.store = store
        self._clock = clock

    def persist(self, item: RawItem) -> PersistResult:
        record = to_record(item, self._clock())
        try:
            pk = self.store.insert_post(record)
        except DuplicatePostError:
            logger.debug(f"Post {item.platform_id} already stored")
            return PersistResult(status="duplicate")
        except StorageError as e:
            logger.error(f"Error storing post {item.platform_id}: {e}")
            return PersistResult(status="failed", error=str(e))

        logger.debug(f"Stored post {item.platform_id} as {pk}")
        return PersistResult(status="inserted", record_id=pk)
