"""Per-channel Markov chain: ingestion of chat text and sampling.

The adjacency table stores one row per observed (word, successor) pair.
Rows are never aggregated, so picking a row uniformly is already weighted
by pair frequency.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from .database import BotDatabase
    from .emote_cache import EmoteCache

BLANK = "⠀"  # braille blank, appended by chat clients to dodge duplicate-message filters

LEADING_JUNK = frozenset('"\'«「“‘([{,.; ' + BLANK)
TRAILING_JUNK = frozenset('"\'»」”’)]},.; !?' + BLANK)

DEFAULT_COUNT = 7
MAX_COUNT = 100


def clean_token(token: str) -> str | None:
    """Strip quote/punctuation junk; None if the token should not be indexed."""
    start, end = 0, len(token)
    while start < end and token[start] in LEADING_JUNK:
        start += 1
    while end > start and token[end - 1] in TRAILING_JUNK:
        end -= 1
    word = token[start:end]
    if not word or BLANK in word or "//" in word or "www." in word:
        return None
    return word


def extract_pairs(
    text: str,
    is_emote=lambda token: False,
) -> list[tuple[str, str]]:
    """Positional (w[i], w[i+1]) pairs where both tokens survive cleaning.

    A discarded token drops the two pairs it takes part in but never shifts
    the pairing of its neighbours.
    """
    words = [clean_token(t) for t in text.split()]
    words = [w if w is None or is_emote(w) else w.lower() for w in words]
    return [
        (word, succ)
        for word, succ in zip(words, words[1:])
        if word is not None and succ is not None
    ]


def choose_successor(successors: Sequence[str], rng: random.Random | None = None) -> str | None:
    """Uniform pick over rows, i.e. frequency-weighted over distinct words."""
    if not successors:
        return None
    return (rng or random).choice(successors)


def clamp_count(count: int | None) -> int:
    if count is None:
        return DEFAULT_COUNT
    return max(1, min(MAX_COUNT, count))


class MarkovStore:
    """Ingests chat lines into, and samples chains from, the adjacency tables."""

    def __init__(
        self,
        database: BotDatabase,
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._db = database
        self._logger = logger or logging.getLogger("bot.markov")
        self._rng = rng or random.Random()

    async def ingest(
        self,
        channel_id: int,
        text: str,
        emote_cache: EmoteCache,
        channel_name: str,
        message_emotes: Iterable[str] = (),
    ) -> int:
        """Append the pairs found in ``text``; returns the number of rows written."""
        message_emotes = frozenset(message_emotes)
        pairs = extract_pairs(
            text,
            lambda token: emote_cache.has_emote(channel_name, token, message_emotes),
        )
        return await self._db.insert_markov_pairs(channel_id, pairs)

    async def sample(self, channel_id: int, seed: str, count: int | None = None) -> list[str] | None:
        """Walk the chain from ``seed``.

        Runs ``count - 1`` rounds; a round whose seed has no successors is
        spent without advancing. Returns None if nothing was ever appended.
        """
        rounds = clamp_count(count) - 1
        output = [seed]
        current = seed
        for _ in range(rounds):
            successors = await self._db.get_markov_successors(channel_id, current)
            succ = choose_successor(successors, self._rng)
            if succ is None:
                continue
            output.append(succ)
            current = succ

        if len(output) == 1:
            return None
        return output
