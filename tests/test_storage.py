"""Tests for the storage backends."""
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from donkee.ingest.persister import to_record
from donkee.storage import InMemoryStore, PostgresStore, create_store
from donkee.storage.errors import DuplicatePostError, StorageError

NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class TestInMemoryStore:
    def test_insert_assigns_ids(self, store, make_item):
        assert store.insert_post(to_record(make_item("a"), NOW)) == 1
        assert store.insert_post(to_record(make_item("b"), NOW)) == 2
        assert store.get_post("b").id == 2

    def test_duplicate_raises(self, store, make_item):
        store.insert_post(to_record(make_item("a"), NOW))

        with pytest.raises(DuplicatePostError) as exc_info:
            store.insert_post(to_record(make_item("a", likes=5), NOW))

        assert exc_info.value.platform_id == "a"
        assert isinstance(exc_info.value, StorageError)
        assert store.get_stats()["total_posts"] == 1

    def test_unknown_post(self, store):
        assert store.get_post("missing") is None

    def test_reply_candidate_window(self, store, make_item):
        store.insert_post(to_record(make_item("old", likes=100, created_at=NOW - timedelta(days=2)), NOW))
        store.insert_post(to_record(make_item("new", likes=1, created_at=NOW), NOW))

        assert store.find_reply_candidate(NOW - timedelta(hours=8)).platform_id == "new"
        assert store.find_reply_candidate(NOW - timedelta(days=3)).platform_id == "old"
        assert store.find_reply_candidate(NOW + timedelta(hours=1)) is None

    def test_posted_tweets_are_recorded_once(self, store):
        store.record_posted_tweet("9", "hee-haw", in_reply_to="a")
        store.record_posted_tweet("9", "hee-haw again", in_reply_to="a")

        posted = store.posted_tweets()
        assert len(posted) == 1
        assert posted[0]["text"] == "hee-haw"
        assert posted[0]["posted_at"].tzinfo == timezone.utc

    def test_daily_slots_are_per_day(self, store):
        day = date(2025, 1, 15)
        assert store.get_daily_post_count(day) == 0
        assert store.reserve_daily_post(day, 2) == 1
        assert store.reserve_daily_post(day, 2) == 2
        assert store.reserve_daily_post(day, 2) is None
        assert store.get_daily_post_count(day) == 2
        assert store.get_daily_post_count(day + timedelta(days=1)) == 0

    def test_release_daily_slot(self, store):
        day = date(2025, 1, 15)
        store.reserve_daily_post(day, 1)

        store.release_daily_post(day)
        store.release_daily_post(day)

        assert store.get_daily_post_count(day) == 0
        assert store.reserve_daily_post(day, 1) == 1

    def test_concurrent_reservations_never_exceed_limit(self, store):
        day = date(2025, 1, 15)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: store.reserve_daily_post(day, 17), range(40)))

        assert sum(r is not None for r in results) == 17
        assert store.get_daily_post_count(day) == 17

    def test_clear(self, store, make_item):
        store.insert_post(to_record(make_item("a"), NOW))
        store.reserve_daily_post(NOW.date(), 17)

        store.clear()

        assert store.get_stats() == {"total_posts": 0, "posted_tweets": 0}
        assert store.get_daily_post_count(NOW.date()) == 0
        assert store.insert_post(to_record(make_item("a"), NOW)) == 1

    def test_context_manager(self):
        with InMemoryStore() as s:
            assert s.health_check()


def test_create_store_in_memory(settings):
    assert isinstance(create_store(settings), InMemoryStore)


def test_create_store_postgres(settings):
    store = create_store(settings.model_copy(update={"use_postgres": True}))
    assert isinstance(store, PostgresStore)
    assert store.database_url == settings.database_url


class TestPostgresStore:
    def test_not_open(self, make_item):
        store = PostgresStore("postgresql://localhost/none")

        with pytest.raises(StorageError):
            store.insert_post(to_record(make_item("a"), NOW))
        assert store.health_check() is False

    @patch("donkee.storage.db.ConnectionPool")
    def test_connection_failure_is_storage_error(self, mock_pool_cls):
        import psycopg
        mock_pool_cls.return_value.open.side_effect = psycopg.OperationalError("connection refused")

        with pytest.raises(StorageError):
            PostgresStore("postgresql://localhost/none").open()

        mock_pool_cls.return_value.close.assert_called_once()

    @patch("donkee.storage.db.ConnectionPool")
    def test_unique_violation_is_duplicate(self, mock_pool_cls, make_item):
        import psycopg
        cursor = MagicMock()
        cursor.execute.side_effect = [None, psycopg.errors.UniqueViolation("duplicate key")]
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor
        mock_pool_cls.return_value.connection.return_value.__enter__.return_value = conn

        store = PostgresStore("postgresql://localhost/donkee").open()

        with pytest.raises(DuplicatePostError):
            store.insert_post(to_record(make_item("a"), NOW))

    @patch("donkee.storage.db.ConnectionPool")
    def test_other_database_error_is_storage_error(self, mock_pool_cls, make_item):
        import psycopg
        cursor = MagicMock()
        cursor.execute.side_effect = [None, psycopg.errors.CheckViolation("likes >= 0")]
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor
        mock_pool_cls.return_value.connection.return_value.__enter__.return_value = conn

        store = PostgresStore("postgresql://localhost/donkee").open()

        with pytest.raises(StorageError) as exc_info:
            store.insert_post(to_record(make_item("a"), NOW))
        assert not isinstance(exc_info.value, DuplicatePostError)

    @patch("donkee.storage.db.ConnectionPool")
    def test_reserve_at_limit_returns_none(self, mock_pool_cls):
        cursor = MagicMock()
        cursor.fetchone.return_value = None
        conn = MagicMock()
        conn.cursor.return_value.__enter__.return_value = cursor
        mock_pool_cls.return_value.connection.return_value.__enter__.return_value = conn

        store = PostgresStore("postgresql://localhost/donkee").open()

        assert store.reserve_daily_post(NOW.date(), 17) is None
        sql, params = cursor.execute.call_args.args
        assert "WHERE daily_post_counts.count < %s" in sql
        assert params == (NOW.date(), 17)
