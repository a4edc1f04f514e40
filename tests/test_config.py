import logging
import pytest

from donkee.config import DEFAULT_LIST_IDS, Settings
from donkee.logging_config import setup_logging


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.max_results == 100
    assert settings.rate_limit_max_attempts == 5
    assert settings.rate_limit_fallback_seconds == 60.0
    assert settings.daily_tweet_limit == 17
    assert settings.list_ids == [i for i in DEFAULT_LIST_IDS.split(",")]
    assert len(settings.list_ids) == 5


def test_list_ids_ignores_blanks():
    settings = Settings(_env_file=None, x_list_ids=" 111, ,222,")
    assert settings.list_ids == ["111", "222"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DAILY_TWEET_LIMIT", "3")
    monkeypatch.setenv("USE_POSTGRES", "false")

    settings = Settings(_env_file=None)

    assert settings.daily_tweet_limit == 3
    assert settings.use_postgres is False


def test_missing_credentials(settings):
    assert settings.missing_credentials() == []

    bare = Settings(_env_file=None, use_postgres=False)
    assert "x_bearer_token" in bare.missing_credentials()
    assert "donkee_secret_key" in bare.missing_credentials()
    assert "database_url" not in bare.missing_credentials()


def test_setup_logging_levels():
    root = setup_logging("debug")

    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING

    setup_logging("ERROR")
    assert logging.getLogger("httpx").level == logging.ERROR


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging("LOUD")
