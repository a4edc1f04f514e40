import pytest
from datetime import datetime, timezone
from donkee.config import Settings
from donkee.services.types import RawItem
from donkee.storage.memory_storage import InMemoryStore

NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        x_bearer_token="bearer-token",
        x_api_key="api-key",
        x_api_key_secret="api-secret",
        x_access_token="access-token",
        x_access_token_secret="access-secret",
        grok_api_key="grok-key",
        donkee_secret_key="test-key",
        use_postgres=False,
        search_query="#sol OR #memecoins",
        x_list_ids="111,222,333",
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_item():
    def _make(platform_id="1", text="gm degens #sol", likes=0, retweets=0,
              created_at=NOW, hashtags=None):
        return RawItem(
            platform_id=platform_id,
            text=text,
            like_count=likes,
            repost_count=retweets,
            created_at=created_at,
            hashtags=hashtags if hashtags is not None else ["sol"],
        )
    return _make
