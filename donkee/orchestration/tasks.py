import datetime as dt
import logging
from typing import Dict, Iterable, Optional

from donkee import __version__
from donkee.config import Settings
from donkee.ingest.fetcher import Fetcher
from donkee.ingest.persister import Persister
from donkee.ingest.sources import SourceEnumerator
from donkee.services.types import (
    Empty, FetchResult, IngestReport, Items, Source, SourceReport,
)
from donkee.storage.errors import StorageError

logger = logging.getLogger(__name__)

MIN_TWEET_LENGTH = 10


class BotError(Exception):
    """A posting flow could not complete."""


class ContentTooShortError(BotError):
    pass


class DailyLimitReachedError(BotError):
    def __init__(self, limit: int, reset_at: dt.datetime):
        super().__init__(f"Daily tweet limit of {limit} reached")
        self.limit = limit
        self.reset_at = reset_at


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def healthcheck(store=None) -> Dict:
    """Health check with timestamp."""
    result = {
        "status": "ok",
        "timestamp": _utcnow().isoformat(),
        "version": __version__,
    }
    if store is not None:
        healthy = store.health_check()
        result["database"] = "ok" if healthy else "unavailable"
        if not healthy:
            result["status"] = "degraded"
    return result


def run_ingestion(
    sources: Iterable[Source],
    fetcher: Fetcher,
    persister: Persister,
    max_items: int = 100,
) -> IngestReport:
    """
    Fetch every source in order and store what comes back.

    A failed source or a failed item is recorded in the report and the run
    moves on; nothing here aborts the run.
    """
    report = IngestReport(started_at=_utcnow())

    for source in sources:
        outcome: FetchResult = fetcher.fetch(source, max_items)

        if isinstance(outcome, Items):
            source_report = SourceReport(
                source=source,
                status="stored",
                attempts=outcome.attempts,
                fetched=len(outcome.items),
            )
            for item in outcome.items:
                result = persister.persist(item)
                if result.status == "inserted":
                    source_report.stored += 1
                elif result.status == "duplicate":
                    source_report.duplicates += 1
                else:
                    source_report.persist_errors += 1
            logger.info(
                f"Posts from {source}: {source_report.stored} stored, "
                f"{source_report.duplicates} already known, "
                f"{source_report.persist_errors} failed"
            )

        elif isinstance(outcome, Empty):
            source_report = SourceReport(source=source, status="empty", attempts=outcome.attempts)
            logger.info(f"No posts found from {source}")

        else:  # Failed
            source_report = SourceReport(
                source=source,
                status="failed",
                attempts=outcome.attempts,
                failure_reason=outcome.reason,
                detail=outcome.detail,
            )
            logger.warning(f"Skipping {source}: {outcome.reason.value} ({outcome.detail})")

        report.sources.append(source_report)

    report.finished_at = _utcnow()
    summary = report.summary()
    logger.info(
        f"Ingestion finished: {summary['stored']} new posts from {summary['sources']} sources "
        f"({summary['failed_sources']} failed)"
    )
    return report


def search_and_store(x_client, store, settings: Settings, fetcher: Optional[Fetcher] = None) -> IngestReport:
    """Poll the configured query and lists and store the results."""
    sources = SourceEnumerator.from_settings(settings)
    fetcher = fetcher or Fetcher.from_settings(x_client, settings)
    persister = Persister(store)
    logger.info(f"Starting ingestion over {len(sources)} sources")
    return run_ingestion(sources, fetcher, persister, settings.max_results)


def fit_tweet_text(text: str, suffix: str = "", max_length: int = 280) -> str:
    """
    Append ``suffix`` to generated text and keep the result within ``max_length``.

    The body is truncated with an ellipsis so the suffix always survives.

    Raises:
        ContentTooShortError: If the generated text is shorter than 10 characters
        ValueError: If ``suffix`` leaves no room for any body text
    """
    keep = max_length - len(suffix) - 3
    if keep < 1:
        raise ValueError(f"Suffix of {len(suffix)} characters does not fit in {max_length}")

    body = (text or "").strip()
    if len(body) < MIN_TWEET_LENGTH:
        raise ContentTooShortError("Generated content too short")

    final = f"{body}{suffix}"
    if len(final) > max_length:
        logger.info(f"Truncating tweet from {len(final)} characters")
        final = f"{body[:keep].rstrip()}...{suffix}"
    return final


def _next_utc_midnight(now: dt.datetime) -> dt.datetime:
    tomorrow = now.date() + dt.timedelta(days=1)
    return dt.datetime.combine(tomorrow, dt.time.min, tzinfo=dt.timezone.utc)


def _reserve_daily_slot(store, settings: Settings, now: dt.datetime) -> int:
    """Claim one of today's (UTC) posts. Raises DailyLimitReachedError when none are left."""
    count = store.reserve_daily_post(now.date(), settings.daily_tweet_limit)
    if count is None:
        logger.error("Daily tweet limit reached")
        raise DailyLimitReachedError(settings.daily_tweet_limit, _next_utc_midnight(now))
    return count


def _publish(store, settings: Settings, now: dt.datetime, compose, x_client,
             reply_to: Optional[str] = None) -> Dict:
    """
    Reserve a slot, compose the text and post it.

    The slot is handed back if composing or posting fails. Once X has
    accepted the post it stays counted, even if recording it fails.
    """
    count = _reserve_daily_slot(store, settings, now)
    try:
        text = compose()
        tweet_id, response = x_client.post_tweet(text, reply_to=reply_to)
    except Exception:
        store.release_daily_post(now.date())
        raise

    try:
        store.record_posted_tweet(tweet_id, text, in_reply_to=reply_to, api_response=response)
    except StorageError as e:
        logger.error(f"Tweet {tweet_id} is live but could not be recorded: {e}")

    return {
        "success": True,
        "tweet_id": tweet_id,
        "text": text,
        "remaining": settings.daily_tweet_limit - count,
    }


def post_new_tweet(grok, x_client, store, settings: Settings, dry_run: bool = False,
                   now: Optional[dt.datetime] = None) -> Dict:
    """Generate a Donkee tweet with Grok and publish it."""
    now = now or _utcnow()

    def compose() -> str:
        return fit_tweet_text(grok.generate_tweet(), settings.tweet_suffix, settings.tweet_max_length)

    if dry_run:
        text = compose()
        logger.info(f"Dry run, not posting: {text}")
        return {
            "success": True,
            "dry_run": True,
            "text": text,
            "remaining": settings.daily_tweet_limit - store.get_daily_post_count(now.date()),
        }

    result = _publish(store, settings, now, compose, x_client)
    logger.info(f"Tweet posted: {result['text']}")
    return result


def reply_to_top_tweet(grok, x_client, store, settings: Settings, dry_run: bool = False,
                       now: Optional[dt.datetime] = None) -> Dict:
    """Reply to the most engaging recent post Donkee has not replied to yet."""
    now = now or _utcnow()
    since = now - dt.timedelta(hours=settings.reply_lookback_hours)

    target = store.find_reply_candidate(since)
    if target is None:
        logger.info("No tweet found to comment on.")
        return {"success": False, "detail": "No tweet found to comment on"}

    def compose() -> str:
        comment = fit_tweet_text(grok.generate_comment(target.text), "", settings.tweet_max_length)
        logger.info(f"Generated comment for {target.platform_id}: {comment}")
        return comment

    if dry_run:
        return {"success": True, "dry_run": True, "text": compose(), "in_reply_to": target.platform_id}

    result = _publish(store, settings, now, compose, x_client, reply_to=target.platform_id)
    result["in_reply_to"] = target.platform_id
    logger.info("Reply sent successfully!")
    return result
