"""Tests for normalizing and storing fetched posts."""
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from pydantic import ValidationError

from donkee.ingest.persister import Persister, to_record
from donkee.services.types import RawItem
from donkee.storage.errors import StorageError

INGESTED = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def test_persist_inserts(store, make_item):
    result = Persister(store).persist(make_item("42", likes=3, retweets=1))

    assert result.status == "inserted"
    assert result.ok
    assert result.record_id == 1
    stored = store.get_post("42")
    assert stored.like_count == 3
    assert stored.repost_count == 1
    assert stored.hashtags == ["sol"]


def test_duplicate_is_a_successful_noop(store, make_item):
    persister = Persister(store)

    first = persister.persist(make_item("42"))
    second = persister.persist(make_item("42", likes=99))

    assert first.status == "inserted"
    assert second.status == "duplicate"
    assert second.ok
    assert len(store.all_posts()) == 1
    assert store.get_post("42").like_count == 0


def test_missing_metrics_normalize_to_zero(store):
    item = RawItem(platform_id="7", text="no metrics here", like_count=None, repost_count=None)

    Persister(store).persist(item)

    stored = store.get_post("7")
    assert stored.like_count == 0
    assert stored.repost_count == 0
    assert stored.hashtags == []


def test_storage_failure_is_reported_not_raised(make_item):
    broken = MagicMock()
    broken.insert_post.side_effect = StorageError("disk full")

    result = Persister(broken).persist(make_item("1"))

    assert result.status == "failed"
    assert not result.ok
    assert "disk full" in result.error
    assert broken.insert_post.call_count == 1


def test_to_record_defaults_created_at_to_ingestion_time():
    record = to_record(RawItem(platform_id="1", text="hi"), INGESTED)

    assert record.created_at == INGESTED
    assert record.ingested_at == INGESTED
    assert record.id is None


def test_raw_item_requires_platform_id():
    with pytest.raises(ValidationError):
        RawItem(platform_id="", text="hi")


def test_raw_item_rejects_negative_metrics():
    with pytest.raises(ValidationError):
        RawItem(platform_id="1", text="hi", like_count=-1)


def test_raw_item_null_hashtags():
    assert RawItem(platform_id="1", text="hi", hashtags=None).hashtags == []
