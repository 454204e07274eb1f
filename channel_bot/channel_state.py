"""Channel state store — hooks and the trivia session of every channel.

State is in-memory. Hooks are mirrored to the database by the commands that
change them and reloaded at startup; a trivia session simply dies with the
process.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .errors import CollaboratorError
from .models import Hook, TriviaQuestion

TriviaSource = Callable[[Optional[str], Optional[str], Optional[str]], Awaitable[Optional[TriviaQuestion]]]


@dataclass
class ChannelSpecifics:
    """Mutable state for a single channel."""

    hooks: list[Hook] = field(default_factory=list)
    trivia: TriviaQuestion | None = None


class ChannelStateStore:
    """Per-channel hooks plus at most one in-progress trivia session."""

    def __init__(self, trivia_source: TriviaSource, logger: logging.Logger | None = None) -> None:
        self._trivia_source = trivia_source
        self._logger = logger or logging.getLogger("bot.state")
        self._lock = threading.Lock()
        self._states: dict[int, ChannelSpecifics] = {}

    def _get(self, channel_id: int) -> ChannelSpecifics:
        # Caller holds the lock.
        if channel_id not in self._states:
            self._states[channel_id] = ChannelSpecifics()
        return self._states[channel_id]

    def register_channel(self, channel_id: int, hooks: list[Hook] | None = None) -> None:
        with self._lock:
            state = self._get(channel_id)
            if hooks is not None:
                state.hooks = list(hooks)

    # ══════════════════════════════════════════════════════════
    #  Trivia
    # ══════════════════════════════════════════════════════════

    def current_trivia(self, channel_id: int) -> TriviaQuestion | None:
        with self._lock:
            return self._get(channel_id).trivia

    async def start_trivia(
        self,
        channel_id: int,
        category: str | None = None,
        difficulty: str | None = None,
        question_type: str | None = None,
    ) -> TriviaQuestion | None:
        """Start a session. Returns None if one is already in progress.

        The check and the commit are separate critical sections with the
        question fetch in between; two racing starts both commit and the
        later one wins. There is never more than one session per channel.
        """
        with self._lock:
            if self._get(channel_id).trivia is not None:
                return None

        question = await self._trivia_source(category, difficulty, question_type)
        if question is None:
            raise CollaboratorError("could not fetch a trivia question")

        with self._lock:
            self._get(channel_id).trivia = question
        self._logger.debug("Trivia started in %d: %s", channel_id, question.question)
        return question

    def evaluate_answer(self, channel_id: int, text: str) -> TriviaQuestion | None:
        """If ``text`` is the correct answer, end the session and return it."""
        with self._lock:
            state = self._get(channel_id)
            question = state.trivia
            if question is None:
                return None
            if text.strip().lower() != question.correct_answer.strip().lower():
                return None
            state.trivia = None
            return question

    def hint(self, channel_id: int) -> list[str] | None:
        """All candidate answers in random order, or None with no game running."""
        with self._lock:
            question = self._get(channel_id).trivia
            if question is None:
                return None
            answers = question.answers
        random.shuffle(answers)
        return answers

    def give_up(self, channel_id: int) -> TriviaQuestion | None:
        with self._lock:
            state = self._get(channel_id)
            question, state.trivia = state.trivia, None
            return question

    # ══════════════════════════════════════════════════════════
    #  Hooks
    # ══════════════════════════════════════════════════════════

    def add_hook(self, channel_id: int, hook: Hook) -> None:
        """Register a hook; an existing hook with the same trigger is replaced."""
        with self._lock:
            state = self._get(channel_id)
            state.hooks = [h for h in state.hooks if h.trigger != hook.trigger]
            state.hooks.append(hook)

    def remove_hook(self, channel_id: int, trigger: str) -> bool:
        with self._lock:
            state = self._get(channel_id)
            before = len(state.hooks)
            state.hooks = [h for h in state.hooks if h.trigger != trigger]
            return len(state.hooks) != before

    def get_hooks(self, channel_id: int) -> list[Hook]:
        with self._lock:
            return list(self._get(channel_id).hooks)

    def match_hook(self, channel_id: int, text: str) -> Hook | None:
        """The most recently registered hook matching ``text``."""
        with self._lock:
            hooks = list(self._get(channel_id).hooks)
        for hook in reversed(hooks):
            if hook.matches(text):
                return hook
        return None
