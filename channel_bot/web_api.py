"""Third-party web APIs — emote directories, trivia, reference lookups, paste.

Every call is an independent request/parse/return; none of them cache.
Failures are logged and reported as None, the way the command handlers
expect ("❌ not found" style replies).
"""

from __future__ import annotations

import html
import logging
import random
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp

from . import __version__
from .models import TriviaQuestion

if TYPE_CHECKING:
    from .config import ApiKeysConfig

SEVENTV_USER_URL = "https://7tv.io/v3/users/twitch/{id}"
SEVENTV_GLOBAL_URL = "https://7tv.io/v3/emote-sets/global"
BTTV_USER_URL = "https://api.betterttv.net/3/cached/users/twitch/{id}"
BTTV_GLOBAL_URL = "https://api.betterttv.net/3/cached/emotes/global"
FFZ_USER_URL = "https://api.betterttv.net/3/cached/frankerfacez/users/twitch/{id}"
FFZ_GLOBAL_URL = "https://api.betterttv.net/3/cached/frankerfacez/emotes/global"

OPENTDB_URL = "https://opentdb.com/api.php"
WTTR_URL = "https://wttr.in/{location}"
WIKI_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/{title}"
DICTIONARY_URL = "https://api.dictionaryapi.dev/api/v2/entries/en/{word}"
URBAN_URL = "https://api.urbandictionary.com/v0/define"
REDDIT_TOP_URL = "https://www.reddit.com/r/{subreddit}/top.json"
DEEPL_URL = "https://api-free.deepl.com/v2/translate"
PASTE_URL = "https://paste.rs/"


class WebApiClient:
    """Async client for every non-Twitch HTTP collaborator."""

    def __init__(self, api_keys: ApiKeysConfig, logger: logging.Logger | None = None) -> None:
        self._api_keys = api_keys
        self._logger = logger or logging.getLogger("bot.web")
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        """Create the HTTP session."""
        self._session = aiohttp.ClientSession(
            headers={"User-Agent": f"channel-bot/{__version__}"},
            timeout=aiohttp.ClientTimeout(total=10.0),
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any | None:
        if not self._session:
            return None
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status == 404:
                    return None
                resp.raise_for_status()
                return await resp.json(content_type=None)
        except Exception as e:
            self._logger.error("GET %s failed: %s", url, e)
            return None

    # ══════════════════════════════════════════════════════════
    #  Emotes
    # ══════════════════════════════════════════════════════════

    async def get_channel_emotes(self, channel_id: int) -> list[str] | None:
        """Union of the channel's 7TV, BTTV and FFZ emotes; None if every provider failed."""
        codes: list[str] = []
        any_ok = False

        data = await self._get_json(SEVENTV_USER_URL.format(id=channel_id))
        if isinstance(data, dict):
            any_ok = True
            emote_set = data.get("emote_set") or {}
            codes.extend(e["name"] for e in emote_set.get("emotes") or [])

        data = await self._get_json(BTTV_USER_URL.format(id=channel_id))
        if isinstance(data, dict):
            any_ok = True
            for key in ("channelEmotes", "sharedEmotes"):
                codes.extend(e["code"] for e in data.get(key) or [])

        data = await self._get_json(FFZ_USER_URL.format(id=channel_id))
        if isinstance(data, list):
            any_ok = True
            codes.extend(e["code"] for e in data)

        return codes if any_ok else None

    async def get_global_emotes(self, provider: str) -> list[str] | None:
        if provider == "7tv":
            data = await self._get_json(SEVENTV_GLOBAL_URL)
            if not isinstance(data, dict):
                return None
            return [e["name"] for e in data.get("emotes") or []]
        if provider == "bttv":
            url = BTTV_GLOBAL_URL
        elif provider == "ffz":
            url = FFZ_GLOBAL_URL
        else:
            raise ValueError(f"unknown emote provider: {provider}")
        data = await self._get_json(url)
        if not isinstance(data, list):
            return None
        return [e["code"] for e in data]

    # ══════════════════════════════════════════════════════════
    #  Trivia
    # ══════════════════════════════════════════════════════════

    async def fetch_trivia_question(
        self,
        category: str | None = None,
        difficulty: str | None = None,
        question_type: str | None = None,
    ) -> TriviaQuestion | None:
        """One question from Open Trivia DB, HTML entities decoded."""
        params = {"amount": "1"}
        if category:
            params["category"] = category
        if difficulty:
            params["difficulty"] = difficulty
        if question_type:
            params["type"] = question_type

        data = await self._get_json(OPENTDB_URL, params)
        if not isinstance(data, dict) or data.get("response_code") != 0 or not data.get("results"):
            return None
        q = data["results"][0]
        return TriviaQuestion(
            question=html.unescape(q["question"]),
            correct_answer=html.unescape(q["correct_answer"]),
            incorrect_answers=[html.unescape(a) for a in q["incorrect_answers"]],
            category=html.unescape(q.get("category", "")),
            difficulty=q.get("difficulty", ""),
        )

    # ══════════════════════════════════════════════════════════
    #  Reference lookups
    # ══════════════════════════════════════════════════════════

    async def get_weather(self, location: str) -> str | None:
        data = await self._get_json(WTTR_URL.format(location=quote(location)), {"format": "j1"})
        if not isinstance(data, dict) or not data.get("current_condition"):
            return None
        now = data["current_condition"][0]
        area = location
        if data.get("nearest_area"):
            area = data["nearest_area"][0]["areaName"][0]["value"]
        desc = now.get("weatherDesc", [{}])[0].get("value", "").strip()
        return (
            f"🌡️ {area}: {desc}, {now['temp_C']}°C (feels like {now['FeelsLikeC']}°C), "
            f"💧 {now['humidity']}%, 💨 {now['windspeedKmph']} km/h"
        )

    async def query_wikipedia(self, title: str) -> str | None:
        """First sentence of the article's summary."""
        data = await self._get_json(WIKI_SUMMARY_URL.format(title=quote(title.replace(" ", "_"))))
        if not isinstance(data, dict) or not data.get("extract"):
            return None
        first = data["extract"].split(". ")[0].rstrip(".")
        return f"{first}."

    async def query_dictionary(self, word: str) -> str | None:
        data = await self._get_json(DICTIONARY_URL.format(word=quote(word)))
        if not isinstance(data, list) or not data:
            return None
        meanings = data[0].get("meanings") or []
        if not meanings or not meanings[0].get("definitions"):
            return None
        meaning = meanings[0]
        return f"📖 {word} ({meaning.get('partOfSpeech', '?')}): {meaning['definitions'][0]['definition']}"

    async def query_urban_dictionary(self, term: str) -> str | None:
        data = await self._get_json(URBAN_URL, {"term": term})
        if not isinstance(data, dict) or not data.get("list"):
            return None
        definition = re.sub(r"[\[\]]", "", data["list"][0]["definition"])
        return " ".join(definition.split())

    async def get_reddit_post(self, subreddit: str) -> str | None:
        """A random post from the subreddit's top posts of the day."""
        data = await self._get_json(
            REDDIT_TOP_URL.format(subreddit=quote(subreddit)), {"t": "day", "limit": "25"},
        )
        if not isinstance(data, dict):
            return None
        posts = [c["data"] for c in (data.get("data") or {}).get("children") or []]
        if not posts:
            return None
        post = random.choice(posts)
        return f"{post['title']} https://redd.it/{post['id']}"

    async def translate(self, source_lang: str, target_lang: str, text: str) -> str | None:
        if not self._api_keys.deepl:
            self._logger.warning("translate called without a DeepL API key")
            return None
        if not self._session:
            return None
        try:
            async with self._session.post(
                DEEPL_URL,
                headers={"Authorization": f"DeepL-Auth-Key {self._api_keys.deepl}"},
                data={
                    "text": text,
                    "source_lang": source_lang.upper(),
                    "target_lang": target_lang.upper(),
                },
            ) as resp:
                resp.raise_for_status()
                data = await resp.json()
                return data["translations"][0]["text"]
        except Exception as e:
            self._logger.error("DeepL translation failed: %s", e)
            return None

    async def upload_paste(self, text: str) -> str | None:
        """Upload ``text`` to paste.rs and return its URL."""
        if not self._session:
            return None
        try:
            async with self._session.post(PASTE_URL, data=text.encode("utf-8")) as resp:
                resp.raise_for_status()
                return (await resp.text()).strip()
        except Exception as e:
            self._logger.error("Paste upload failed: %s", e)
            return None
