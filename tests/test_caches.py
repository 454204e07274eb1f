"""Tests for channel_bot.identity_cache and channel_bot.emote_cache."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from channel_bot.emote_cache import EmoteCache
from channel_bot.identity_cache import IdentityCache

from tests.conftest import CHANNEL, OTHER_CHANNEL


class TestIdentityCache:

    async def test_miss_resolves_and_caches(self):
        resolver = AsyncMock(return_value=42)
        cache = IdentityCache(resolver)
        assert await cache.resolve("Bob") == 42
        assert await cache.resolve("bob") == 42
        resolver.assert_awaited_once_with("Bob")
        assert cache.lookups == 1

    async def test_unknown_not_cached(self):
        resolver = AsyncMock(return_value=None)
        cache = IdentityCache(resolver)
        assert await cache.resolve("ghost") is None
        assert await cache.resolve("ghost") is None
        assert resolver.await_count == 2
        assert len(cache) == 0

    async def test_insert_avoids_lookup(self):
        resolver = AsyncMock(return_value=1)
        cache = IdentityCache(resolver)
        cache.insert("Alice", 11)
        assert await cache.resolve("alice") == 11
        resolver.assert_not_awaited()

    async def test_clear_forces_re_resolve(self):
        resolver = AsyncMock(return_value=42)
        cache = IdentityCache(resolver)
        await cache.resolve("bob")
        cache.insert("alice", 11)
        assert cache.clear() == 2
        assert len(cache) == 0
        assert await cache.resolve("bob") == 42
        assert resolver.await_count == 2


class TestEmoteCache:

    def test_lookup(self):
        cache = EmoteCache()
        cache.replace({"TestChannel": ["catJAM"]}, ["Kappa"])
        assert cache.has_emote("testchannel", "catJAM")
        assert cache.has_emote("otherchannel", "Kappa")
        assert not cache.has_emote("otherchannel", "catJAM")
        assert not cache.has_emote("testchannel", "catjam")
        assert cache.has_emote("otherchannel", "LUL", ["LUL"])
        assert cache.counts() == (1, 1)

    async def test_refresh_without_client(self):
        cache = EmoteCache()
        assert await cache.refresh([CHANNEL]) == (0, 0)

    async def test_refresh_replaces_contents(self):
        web = MagicMock()
        web.get_channel_emotes = AsyncMock(side_effect=[["a", "b"], None])
        web.get_global_emotes = AsyncMock(side_effect=[["g1"], None, ["g2", "g1"]])
        cache = EmoteCache(web)
        cache.replace({"stale": ["old"]}, ["older"])

        assert await cache.refresh([CHANNEL, OTHER_CHANNEL]) == (2, 2)
        assert cache.has_emote(CHANNEL.name, "a")
        assert not cache.has_emote("stale", "old")
        assert not cache.has_emote(OTHER_CHANNEL.name, "older")
        assert cache.has_emote(OTHER_CHANNEL.name, "g2")
