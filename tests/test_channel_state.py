"""Tests for channel_bot.channel_state: trivia sessions and hooks."""

from __future__ import annotations

import asyncio
import logging

import pytest

from channel_bot.channel_state import ChannelStateStore
from channel_bot.errors import CollaboratorError
from channel_bot.models import Hook, HookMatchType

from tests.conftest import CHANNEL, OTHER_CHANNEL, make_question


class TestTrivia:

    async def test_start_and_answer(self, channel_state: ChannelStateStore):
        question = await channel_state.start_trivia(CHANNEL.id)
        assert question.correct_answer == "Paris"
        assert channel_state.evaluate_answer(CHANNEL.id, "Lyon") is None
        assert channel_state.evaluate_answer(CHANNEL.id, "PARIS") is question
        assert channel_state.current_trivia(CHANNEL.id) is None

    async def test_second_start_refused(self, channel_state: ChannelStateStore, mock_web):
        await channel_state.start_trivia(CHANNEL.id)
        assert await channel_state.start_trivia(CHANNEL.id) is None
        assert mock_web.fetch_trivia_question.await_count == 1

    async def test_sessions_are_per_channel(self, channel_state: ChannelStateStore):
        await channel_state.start_trivia(CHANNEL.id)
        assert await channel_state.start_trivia(OTHER_CHANNEL.id) is not None

    async def test_concurrent_starts_leave_one_session(self):
        questions = iter([make_question(correct_answer="A"), make_question(correct_answer="B")])

        async def slow_source(category, difficulty, question_type):
            await asyncio.sleep(0)
            return next(questions)

        store = ChannelStateStore(slow_source, logging.getLogger("test"))
        await asyncio.gather(store.start_trivia(CHANNEL.id), store.start_trivia(CHANNEL.id))
        assert store.current_trivia(CHANNEL.id).correct_answer in ("A", "B")
        store.give_up(CHANNEL.id)
        assert store.current_trivia(CHANNEL.id) is None

    async def test_source_failure(self, channel_state: ChannelStateStore, mock_web):
        mock_web.fetch_trivia_question.return_value = None
        with pytest.raises(CollaboratorError):
            await channel_state.start_trivia(CHANNEL.id)
        assert channel_state.current_trivia(CHANNEL.id) is None

    async def test_hint_contains_every_answer(self, channel_state: ChannelStateStore):
        assert channel_state.hint(CHANNEL.id) is None
        await channel_state.start_trivia(CHANNEL.id)
        assert sorted(channel_state.hint(CHANNEL.id)) == ["Lille", "Lyon", "Nice", "Paris"]
        assert channel_state.current_trivia(CHANNEL.id) is not None

    async def test_give_up(self, channel_state: ChannelStateStore):
        assert channel_state.give_up(CHANNEL.id) is None
        await channel_state.start_trivia(CHANNEL.id)
        assert channel_state.give_up(CHANNEL.id).correct_answer == "Paris"
        assert channel_state.current_trivia(CHANNEL.id) is None


class TestHooks:

    def test_register_channel_loads_hooks(self, channel_state: ChannelStateStore):
        hook = Hook("hi", HookMatchType.EXACT, "hello")
        channel_state.register_channel(CHANNEL.id, [hook])
        assert channel_state.get_hooks(CHANNEL.id) == [hook]

    def test_exact_vs_substring(self, channel_state: ChannelStateStore):
        channel_state.add_hook(CHANNEL.id, Hook("hi", HookMatchType.EXACT, "exact"))
        assert channel_state.match_hook(CHANNEL.id, " hi ").response == "exact"
        assert channel_state.match_hook(CHANNEL.id, "hi there") is None
        channel_state.add_hook(CHANNEL.id, Hook("there", HookMatchType.SUBSTRING, "sub"))
        assert channel_state.match_hook(CHANNEL.id, "hi THERE").response == "sub"

    def test_last_registered_wins(self, channel_state: ChannelStateStore):
        channel_state.add_hook(CHANNEL.id, Hook("a", HookMatchType.SUBSTRING, "first"))
        channel_state.add_hook(CHANNEL.id, Hook("b", HookMatchType.SUBSTRING, "second"))
        assert channel_state.match_hook(CHANNEL.id, "a b").response == "second"

    def test_same_trigger_replaced(self, channel_state: ChannelStateStore):
        channel_state.add_hook(CHANNEL.id, Hook("a", HookMatchType.SUBSTRING, "old"))
        channel_state.add_hook(CHANNEL.id, Hook("a", HookMatchType.EXACT, "new"))
        hooks = channel_state.get_hooks(CHANNEL.id)
        assert len(hooks) == 1 and hooks[0].response == "new"

    def test_remove(self, channel_state: ChannelStateStore):
        channel_state.add_hook(CHANNEL.id, Hook("a", HookMatchType.SUBSTRING, "x"))
        assert channel_state.remove_hook(CHANNEL.id, "a") is True
        assert channel_state.remove_hook(CHANNEL.id, "a") is False

    def test_hooks_are_per_channel(self, channel_state: ChannelStateStore):
        channel_state.add_hook(CHANNEL.id, Hook("a", HookMatchType.SUBSTRING, "x"))
        assert channel_state.match_hook(OTHER_CHANNEL.id, "a") is None
