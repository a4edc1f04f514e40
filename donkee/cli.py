#!/usr/bin/env python3
"""
Donkee Bot CLI

Run the bot's jobs once from the command line (e.g. from cron) or start
the HTTP server.
"""

import argparse
import sys

import httpx

from donkee.config import get_settings
from donkee.logging_config import setup_logging, get_logger
from donkee.orchestration.tasks import BotError, post_new_tweet, reply_to_top_tweet, search_and_store
from donkee.services.grok_client import GrokClient, GrokError
from donkee.services.types import IngestReport
from donkee.services.x_client import XApiError, XClient
from donkee.storage import StorageError, create_store

logger = get_logger(__name__)


def print_report(report: IngestReport) -> None:
    print(f"\n{'='*60}")
    print("INGESTION REPORT")
    print(f"{'='*60}")
    for s in report.sources:
        line = f"{str(s.source)[:40]:<40} {s.status:<8} attempts={s.attempts}"
        if s.status == "stored":
            line += f" fetched={s.fetched} new={s.stored} dup={s.duplicates} errors={s.persist_errors}"
        elif s.status == "failed":
            line += f" reason={s.failure_reason.value}"
        print(line)
    summary = report.summary()
    print(f"{'='*60}")
    print(f"Sources: {summary['sources']} ({summary['failed_sources']} failed)")
    print(f"Fetched: {summary['fetched']}  New: {summary['stored']}  Duplicates: {summary['duplicates']}")
    print(f"{'='*60}\n")


def run_search() -> int:
    settings = get_settings()
    with create_store(settings) as store, XClient.from_settings(settings) as x_client:
        report = search_and_store(x_client, store, settings)
    print_report(report)
    return 0


def run_post(reply: bool, dry_run: bool) -> int:
    settings = get_settings()
    with create_store(settings) as store, \
            XClient.from_settings(settings) as x_client, \
            GrokClient.from_settings(settings) as grok:
        flow = reply_to_top_tweet if reply else post_new_tweet
        result = flow(grok, x_client, store, settings, dry_run=dry_run)

    if not result.get("success"):
        print(result.get("detail", "Nothing posted"))
        return 0
    print(result["text"])
    if result.get("tweet_id"):
        print(f"Posted as {result['tweet_id']} ({result['remaining']} posts left today)")
    return 0


def run_server() -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run("donkee.main:app", host="0.0.0.0", port=settings.port, timeout_keep_alive=180)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Donkee Bot - search, tweet and reply on X",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Poll the search query and lists, store new posts
  donkee search

  # Generate a tweet without posting it
  donkee tweet --dry-run

  # Reply to the best post of the last few hours
  donkee reply

  # Start the HTTP API
  donkee serve
        """
    )
    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LOG_LEVEL setting)'
    )

    sub = parser.add_subparsers(dest='command')
    sub.add_parser('search', help='Search and store posts')
    for name, help_text in (('tweet', 'Generate and post a new tweet'),
                            ('reply', 'Reply to the highest-engagement stored post')):
        p = sub.add_parser(name, help=help_text)
        p.add_argument('--dry-run', action='store_true', help='Generate but do not post')
    sub.add_parser('serve', help='Run the HTTP API')

    args = parser.parse_args(argv)
    setup_logging(args.log_level or get_settings().log_level)

    try:
        if args.command == 'search':
            return run_search()
        elif args.command in ('tweet', 'reply'):
            return run_post(reply=args.command == 'reply', dry_run=args.dry_run)
        elif args.command == 'serve':
            return run_server()
        parser.print_help()
        return 1
    except (BotError, GrokError, XApiError, StorageError, httpx.HTTPError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
