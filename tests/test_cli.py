"""Tests for the command line entry point."""
import pytest
from unittest.mock import MagicMock, patch

from donkee import cli
from donkee.services.x_client import XApiError


@pytest.fixture
def wired(settings, store):
    """Patch the CLI's collaborators so no network or database is touched."""
    x_client = MagicMock()
    x_client.__enter__.return_value = x_client
    x_client.search_recent.return_value = []
    x_client.list_tweets.return_value = []
    x_client.post_tweet.return_value = ("42", {"data": {"id": "42"}})
    grok = MagicMock()
    grok.__enter__.return_value = grok
    grok.generate_tweet.return_value = "the donkey has spoken, $SOL to valhalla"

    with patch("donkee.cli.get_settings", return_value=settings), \
            patch("donkee.cli.setup_logging"), \
            patch("donkee.cli.create_store", return_value=store), \
            patch("donkee.cli.XClient") as mock_x, \
            patch("donkee.cli.GrokClient") as mock_grok:
        mock_x.from_settings.return_value = x_client
        mock_grok.from_settings.return_value = grok
        yield x_client, grok


def test_search(wired, store, make_item, capsys):
    x_client, _ = wired
    x_client.search_recent.return_value = [make_item("1"), make_item("2")]

    assert cli.main(["search"]) == 0

    assert len(store.all_posts()) == 2
    out = capsys.readouterr().out
    assert "INGESTION REPORT" in out
    assert "query:" in out


def test_tweet_dry_run(wired, store, capsys):
    x_client, _ = wired

    assert cli.main(["tweet", "--dry-run"]) == 0

    x_client.post_tweet.assert_not_called()
    assert "#NotFinancialAdvice" in capsys.readouterr().out
    assert store.get_stats()["posted_tweets"] == 0


def test_tweet(wired, store, capsys):
    assert cli.main(["tweet"]) == 0

    assert "Posted as 42" in capsys.readouterr().out
    assert store.get_stats()["posted_tweets"] == 1


def test_reply_with_nothing_stored(wired, capsys):
    x_client, _ = wired

    assert cli.main(["reply"]) == 0

    x_client.post_tweet.assert_not_called()
    assert "No tweet found" in capsys.readouterr().out


def test_api_error_exit_code(wired):
    x_client, _ = wired
    x_client.post_tweet.side_effect = XApiError(403, "Forbidden")

    assert cli.main(["tweet"]) == 1


def test_no_command(wired):
    assert cli.main([]) == 1
