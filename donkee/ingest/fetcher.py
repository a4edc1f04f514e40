"""
Fetch one source from the X read API, waiting out rate limits.

X states exactly when a rate-limit window reopens (``x-rate-limit-reset``),
so a retry sleeps until then instead of backing off exponentially. The
attempt ceiling only bounds how long one run can take.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from donkee.config import Settings
from donkee.services.types import (
    Empty, Failed, FailureReason, FetchOutcome, FetchResult, Items, RateLimited, RawItem, Source,
    SourceKind,
)
from donkee.services.x_client import XRateLimitError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED_RETRIES = "exhausted_retries"
    FAILED_OTHER = "failed_other"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Fetcher:
    """
    Bounded-retry fetcher.

    ``reader`` is anything with ``search_recent(query, max_results)`` and
    ``list_tweets(list_id, max_results)`` returning RawItems and raising
    ``XRateLimitError`` when throttled (normally an ``XClient``).
    """

    def __init__(
        self,
        reader,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        fallback_wait: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.reader = reader
        self.max_attempts = max_attempts
        self.fallback_wait = fallback_wait
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, reader, settings: Settings) -> "Fetcher":
        return cls(
            reader,
            max_attempts=settings.rate_limit_max_attempts,
            fallback_wait=settings.rate_limit_fallback_seconds,
        )

    def retry_after(self, reset_at: Optional[datetime]) -> float:
        """Seconds until ``reset_at``, never negative."""
        if reset_at is None:
            return self.fallback_wait
        return max(0.0, (reset_at - self._clock()).total_seconds())

    def _read(self, source: Source, max_items: int) -> List[RawItem]:
        if source.kind is SourceKind.QUERY:
            items = self.reader.search_recent(source.identifier, max_items)
        else:
            items = self.reader.list_tweets(source.identifier, max_items)
        return items[:max_items]

    def _attempt(self, source: Source, max_items: int, attempt: int) -> FetchOutcome:
        try:
            items = self._read(source, max_items)
        except XRateLimitError as e:
            return RateLimited(retry_after=self.retry_after(e.reset_at), attempts=attempt)
        except Exception as e:
            logger.error(f"Error fetching {source}: {e}")
            return Failed(reason=FailureReason.OTHER_ERROR, detail=str(e), attempts=attempt)

        if not items:
            return Empty(attempts=attempt)
        return Items(items=items, attempts=attempt)

    def fetch(self, source: Source, max_items: int = 100) -> FetchResult:
        """
        Fetch up to ``max_items`` posts from ``source``.

        Returns Items, Empty or Failed. Never raises for API errors: a
        rate-limited source is retried up to ``max_attempts`` times in total,
        any other failure gives up immediately.
        """
        attempt = 1
        state = AttemptState.ATTEMPTING

        while state is AttemptState.ATTEMPTING:
            outcome = self._attempt(source, max_items, attempt)

            if isinstance(outcome, RateLimited):
                if attempt < self.max_attempts:
                    logger.warning(
                        f"Rate limited on {source} (attempt {attempt}/{self.max_attempts}), "
                        f"retrying in {outcome.retry_after:.1f}s"
                    )
                    self._sleep(outcome.retry_after)
                    attempt += 1
                else:
                    state = AttemptState.EXHAUSTED_RETRIES
            elif isinstance(outcome, Failed):
                state = AttemptState.FAILED_OTHER
            else:
                state = AttemptState.SUCCEEDED

        if state is AttemptState.EXHAUSTED_RETRIES:
            logger.error(f"Giving up on {source} after {attempt} rate-limited attempts")
            return Failed(
                reason=FailureReason.RATE_LIMIT_EXHAUSTED,
                detail=f"Still rate limited after {attempt} attempts",
                attempts=attempt,
            )
        return outcome
