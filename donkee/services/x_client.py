"""
X (Twitter) API v2 client.

Reads use the app bearer token. Posting uses OAuth 1.0a user context,
signed with HMAC-SHA1 from the four user credentials.
"""

import base64
import hashlib
import hmac
import logging
import secrets
import time
import urllib.parse
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from donkee.config import Settings
from donkee.services.types import RawItem

logger = logging.getLogger(__name__)

X_API_BASE = "https://api.twitter.com/2"
TWEET_FIELDS = "created_at,public_metrics,entities"


class XApiError(Exception):
    """Non-2xx response from the X API."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"X API error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class XRateLimitError(XApiError):
    """HTTP 429. ``reset_at`` is when the rate-limit window reopens, if X said."""

    def __init__(self, reset_at: Optional[datetime], detail: str = ""):
        super().__init__(429, detail or "Too Many Requests")
        self.reset_at = reset_at


def parse_tweet(tweet: Dict[str, Any]) -> RawItem:
    """Map an X API v2 tweet object to a RawItem."""
    metrics = tweet.get("public_metrics") or {}
    entities = tweet.get("entities") or {}

    created_at = None
    created_at_str = tweet.get("created_at")
    if created_at_str:
        created_at = datetime.fromisoformat(created_at_str.replace("Z", "+00:00"))

    return RawItem(
        platform_id=tweet["id"],
        text=tweet.get("text", ""),
        like_count=metrics.get("like_count"),
        repost_count=metrics.get("retweet_count"),
        created_at=created_at,
        hashtags=[h["tag"] for h in entities.get("hashtags", []) if h.get("tag")],
    )


def _rate_limit_reset(response: httpx.Response) -> Optional[datetime]:
    raw = response.headers.get("x-rate-limit-reset")
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except ValueError:
        logger.warning(f"Unparseable x-rate-limit-reset header: {raw!r}")
        return None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("title") or body)
    return str(body)


def _percent_encode(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def oauth1_header(
    method: str,
    url: str,
    api_key: str,
    api_secret: str,
    access_token: str,
    access_token_secret: str,
    nonce: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> str:
    """Build an OAuth 1.0a Authorization header for a JSON-bodied request."""
    oauth_params = {
        "oauth_consumer_key": api_key,
        "oauth_nonce": nonce or secrets.token_hex(16),
        "oauth_signature_method": "HMAC-SHA1",
        "oauth_timestamp": timestamp or str(int(time.time())),
        "oauth_token": access_token,
        "oauth_version": "1.0",
    }

    param_string = "&".join(
        f"{_percent_encode(k)}={_percent_encode(v)}"
        for k, v in sorted(oauth_params.items())
    )
    base_string = "&".join([
        method.upper(),
        _percent_encode(url),
        _percent_encode(param_string),
    ])
    signing_key = f"{_percent_encode(api_secret)}&{_percent_encode(access_token_secret)}"

    signature = hmac.new(
        signing_key.encode("utf-8"),
        base_string.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    oauth_params["oauth_signature"] = base64.b64encode(signature).decode("utf-8")

    return "OAuth " + ", ".join(
        f'{_percent_encode(k)}="{_percent_encode(v)}"'
        for k, v in sorted(oauth_params.items())
    )


class XClient:
    """Thin synchronous wrapper over the X API v2 endpoints the bot uses."""

    def __init__(
        self,
        bearer_token: str,
        api_key: str = "",
        api_key_secret: str = "",
        access_token: str = "",
        access_token_secret: str = "",
        base_url: str = X_API_BASE,
        timeout: float = 10.0,
    ):
        self.bearer_token = bearer_token
        self.api_key = api_key
        self.api_key_secret = api_key_secret
        self.access_token = access_token
        self.access_token_secret = access_token_secret
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": "donkee-bot/1.0"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "XClient":
        return cls(
            bearer_token=settings.x_bearer_token,
            api_key=settings.x_api_key,
            api_key_secret=settings.x_api_key_secret,
            access_token=settings.x_access_token,
            access_token_secret=settings.x_access_token_secret,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "XClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code == 429:
            raise XRateLimitError(_rate_limit_reset(response), _error_detail(response))
        if response.status_code >= 400:
            raise XApiError(response.status_code, _error_detail(response))

    def _read(self, path: str, params: Dict[str, Any]) -> List[RawItem]:
        response = self._client.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self.bearer_token}"},
        )
        self._raise_for_status(response)

        data = response.json()
        items = []
        for tweet in data.get("data") or []:
            try:
                items.append(parse_tweet(tweet))
            except (KeyError, ValueError) as e:
                logger.warning(f"Failed to parse tweet {tweet.get('id', 'unknown')}: {e}")
        return items

    def search_recent(self, query: str, max_results: int = 100) -> List[RawItem]:
        """Recent search. X returns at least 10 results, so the list is cut to ``max_results``."""
        params = {
            "query": query,
            "max_results": max(10, min(100, max_results)),
            "tweet.fields": TWEET_FIELDS,
        }
        return self._read("/tweets/search/recent", params)[:max_results]

    def list_tweets(self, list_id: str, max_results: int = 100) -> List[RawItem]:
        """Latest posts from a list. X accepts 1-100 results per request."""
        params = {
            "max_results": max(1, min(100, max_results)),
            "tweet.fields": TWEET_FIELDS,
        }
        return self._read(f"/lists/{list_id}/tweets", params)[:max_results]

    def post_tweet(self, text: str, reply_to: Optional[str] = None) -> Tuple[str, Dict[str, Any]]:
        """
        Publish a post, optionally as a reply.

        Returns:
            (new tweet id, raw API response)
        """
        url = f"{self.base_url}/tweets"
        payload: Dict[str, Any] = {"text": text}
        if reply_to:
            payload["reply"] = {"in_reply_to_tweet_id": reply_to}

        auth = oauth1_header(
            "POST", url,
            self.api_key, self.api_key_secret,
            self.access_token, self.access_token_secret,
        )
        response = self._client.post(url, json=payload, headers={"Authorization": auth})
        self._raise_for_status(response)

        body = response.json()
        tweet_id = body["data"]["id"]
        logger.info(f"Posted tweet {tweet_id}" + (f" in reply to {reply_to}" if reply_to else ""))
        return tweet_id, body
