"""Background workers: offline-time accrual, identity eviction, emote refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import BotConfig
    from .database import BotDatabase
    from .emote_cache import EmoteCache
    from .identity_cache import IdentityCache
    from .models import Channel
    from .twitch_api import TwitchApiClient


class BackgroundWorkers:
    """Independent periodic tasks. A failed pass is logged and the loop keeps going."""

    def __init__(
        self,
        config: BotConfig,
        database: BotDatabase,
        identity_cache: IdentityCache,
        emote_cache: EmoteCache,
        twitch: TwitchApiClient,
        channels: list[Channel],
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._db = database
        self._identity = identity_cache
        self._emotes = emote_cache
        self._twitch = twitch
        self._channels = channels
        self._logger = logger or logging.getLogger("bot.workers")
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start all periodic tasks."""
        workers = self._config.workers
        if self._config.track_offliners:
            self._tasks.append(asyncio.create_task(self._offline_loop()))
            self._logger.info("Offline-time accrual started (every %ds)", workers.offline_poll_seconds)

        self._tasks.append(asyncio.create_task(self._eviction_loop()))
        self._logger.info("Identity cache eviction started (every %ds)", workers.identity_cache_clear_seconds)

        self._tasks.append(asyncio.create_task(self._emote_loop()))
        self._logger.info("Emote refresh started (every %ds)", workers.emote_refresh_seconds)

    async def stop(self) -> None:
        """Cancel all tasks."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # ══════════════════════════════════════════════════════════
    #  Offline-time accrual
    # ══════════════════════════════════════════════════════════

    async def _offline_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.workers.offline_poll_seconds)
            try:
                credited = await self.accrue_offline_time()
                self._logger.debug("Offline time credited to %d chatters", credited)
            except Exception:
                self._logger.exception("Offline-time accrual failed")

    async def accrue_offline_time(self) -> int:
        """Credit every chatter present in an offline channel. Returns chatters credited."""
        credited = 0
        for channel in self._channels:
            try:
                if await self._twitch.is_live(channel.name):
                    continue
                chatters = await self._twitch.get_chatters(channel.id)
            except Exception:
                self._logger.exception("Could not poll chatters for %s", channel.name)
                continue
            if not chatters:
                continue

            for login in chatters:
                if self._config.is_disregarded(login):
                    continue
                try:
                    user_id = await self._identity.resolve(login)
                    if user_id is None:
                        continue
                    await self._db.add_offline_time(
                        channel.id, user_id, self._config.workers.offline_credit_seconds,
                    )
                    credited += 1
                except Exception:
                    self._logger.exception("Offline-time credit failed for %s in %s", login, channel.name)
        return credited

    # ══════════════════════════════════════════════════════════
    #  Caches
    # ══════════════════════════════════════════════════════════

    async def _eviction_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.workers.identity_cache_clear_seconds)
            try:
                self.evict_identity_cache()
            except Exception:
                self._logger.exception("Identity cache eviction failed")

    def evict_identity_cache(self) -> int:
        removed = self._identity.clear()
        self._logger.info(
            "Identity cache cleared (%d entries, %d resolver lookups so far)", removed, self._identity.lookups,
        )
        return removed

    async def _emote_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.workers.emote_refresh_seconds)
            try:
                await self._emotes.refresh(self._channels)
            except Exception:
                self._logger.exception("Emote refresh failed")
