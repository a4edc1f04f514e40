"""
xAI Grok chat-completions client used to write Donkee's posts and replies.
"""

import logging
from typing import Any, Dict

import httpx

from donkee.config import Settings

logger = logging.getLogger(__name__)

DONKEE_PERSONA = (
    "Here is a little bit about donkee character,Donkee is the only donkey on Solana. "
    "He is a combination of Pepe X donkey A highly intelligent donkey, that loves smoking "
    "weed, reading charts and trading meme coins."
)

NEW_TWEET_PROMPT = "Yo, drop a tweet that'll make the degen fam laugh or think."

COMMENT_PERSONA = (
    "You're DONKEE, the chillest, most stoned donkey around, deep into Solana memecoins and "
    "the whole degen life. Keep your tweets real, funny, and a bit chaotic - speak like "
    "you're at a festival, not a conference. Aim for the crowd that loves risky, meme-driven "
    "crypto plays but keep it light, no financial advice. Mix in slang, memes, and the latest "
    "crypto lingo like 'moon', 'rug pull', 'pump and dump', 'gas fees', 'yield farming', "
    "'ape in', 'FOMO', and 'diamond hands'. But, dude, keep it unpredictable, like a real "
    "donkey on a wild night."
)

COMMENT_PROMPT = 'Comment on this tweet: "{tweet_text}". Keep it playful and avoid financial advice.'


class GrokError(Exception):
    """Grok request failed or returned an unusable response."""


class GrokClient:
    def __init__(
        self,
        api_key: str,
        model: str = "grok-2-latest",
        base_url: str = "https://api.x.ai/v1",
        timeout: float = 180.0,
        temperature: float = 0.8,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._client = httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GrokClient":
        return cls(
            api_key=settings.grok_api_key,
            model=settings.grok_model,
            base_url=settings.grok_base_url,
            timeout=settings.grok_timeout,
            temperature=settings.grok_temperature,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GrokClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Run a single chat completion.

        Args:
            system_prompt: Persona / instructions
            user_prompt: The request

        Returns:
            Generated message content

        Raises:
            GrokError: On transport errors, non-2xx responses or malformed bodies
        """
        payload: Dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "model": self.model,
            "stream": False,
            "temperature": self.temperature,
        }

        try:
            response = self._client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as e:
            logger.error(f"Grok API error: {e.response.status_code}")
            raise GrokError(f"Grok returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Grok request failed: {e}")
            raise GrokError(f"Grok request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Malformed Grok response: {e}")
            raise GrokError("Malformed Grok response") from e

    def generate_tweet(self) -> str:
        return self.complete(DONKEE_PERSONA, NEW_TWEET_PROMPT)

    def generate_comment(self, tweet_text: str) -> str:
        return self.complete(COMMENT_PERSONA, COMMENT_PROMPT.format(tweet_text=tweet_text))
