"""Name → numeric id cache in front of the Twitch user lookup.

Bindings are effectively immutable, so entries never expire individually;
the whole map is swapped out on a timer by the background workers.
"""

from __future__ import annotations

import logging
import threading
from typing import Awaitable, Callable, Optional

Resolver = Callable[[str], Awaitable[Optional[int]]]


class IdentityCache:
    """Thread-safe lazy cache. The lock never spans the network lookup."""

    def __init__(self, resolver: Resolver, logger: logging.Logger | None = None) -> None:
        self._resolver = resolver
        self._logger = logger or logging.getLogger("bot.identity")
        self._lock = threading.Lock()
        self._ids: dict[str, int] = {}
        self.lookups = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def get(self, name: str) -> int | None:
        with self._lock:
            return self._ids.get(name.lower())

    def insert(self, name: str, user_id: int) -> None:
        with self._lock:
            self._ids[name.lower()] = user_id

    async def resolve(self, name: str) -> int | None:
        """Cached id for ``name``, falling back to the resolver on a miss.

        Two concurrent misses for the same name both hit the resolver; the
        later insert simply overwrites the earlier one with the same id.
        """
        cached = self.get(name)
        if cached is not None:
            return cached

        self.lookups += 1
        user_id = await self._resolver(name)
        if user_id is not None:
            self.insert(name, user_id)
        return user_id

    def clear(self) -> int:
        """Atomically replace the map with an empty one; return evicted count."""
        with self._lock:
            evicted = self._ids
            self._ids = {}
        return len(evicted)
