"""Known third-party emote codes per channel plus a global set.

Only consulted to decide whether a Markov token keeps its case.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .models import Channel
    from .web_api import WebApiClient

PROVIDERS = ("7tv", "bttv", "ffz")


class EmoteCache:
    """Rebuilt wholesale by ``refresh``; read-only otherwise."""

    def __init__(self, web: WebApiClient | None = None, logger: logging.Logger | None = None) -> None:
        self._web = web
        self._logger = logger or logging.getLogger("bot.emotes")
        self._lock = threading.Lock()
        self._channel_emotes: dict[str, frozenset[str]] = {}
        self._global_emotes: frozenset[str] = frozenset()

    def has_emote(self, channel: str, token: str, message_emotes: Iterable[str] = ()) -> bool:
        """True if ``token`` is a channel emote, a global emote, or used in this message."""
        if token in message_emotes:
            return True
        with self._lock:
            return token in self._global_emotes or token in self._channel_emotes.get(channel.lower(), ())

    def replace(self, channel_emotes: dict[str, Iterable[str]], global_emotes: Iterable[str]) -> None:
        fresh = {name.lower(): frozenset(codes) for name, codes in channel_emotes.items()}
        with self._lock:
            self._channel_emotes = fresh
            self._global_emotes = frozenset(global_emotes)

    def counts(self) -> tuple[int, int]:
        """(channel emote total, global emote count)."""
        with self._lock:
            return sum(len(s) for s in self._channel_emotes.values()), len(self._global_emotes)

    async def refresh(self, channels: list[Channel]) -> tuple[int, int]:
        """Fetch every provider's emotes; failed providers are skipped."""
        if self._web is None:
            return self.counts()

        channel_emotes: dict[str, set[str]] = {}
        for channel in channels:
            codes = await self._web.get_channel_emotes(channel.id)
            if codes is None:
                self._logger.warning("No channel emotes fetched for %s", channel.name)
                codes = []
            channel_emotes[channel.name] = set(codes)

        global_emotes: set[str] = set()
        for provider in PROVIDERS:
            codes = await self._web.get_global_emotes(provider)
            if codes is None:
                self._logger.warning("No global emotes fetched from %s", provider)
                continue
            global_emotes.update(codes)

        self.replace(channel_emotes, global_emotes)
        totals = self.counts()
        self._logger.info("Emote cache refreshed: %d channel, %d global", *totals)
        return totals
