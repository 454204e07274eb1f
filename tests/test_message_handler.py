"""Tests for channel_bot.message_handler: the per-message pipeline."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from channel_bot.channel_state import ChannelStateStore
from channel_bot.config import BotConfig
from channel_bot.database import BotDatabase
from channel_bot.message_handler import MessageHandler
from channel_bot.models import Hook, HookMatchType, Sender

from tests.conftest import ALICE, CHANNEL, count_markov_rows, make_config_dict, make_event

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestFiltering:

    async def test_disregarded_user_ignored(
        self, message_handler: MessageHandler, database: BotDatabase, speak: AsyncMock,
    ):
        bot = Sender(id=77, name="nightbot")
        await message_handler.handle(make_event("$ping", sender=bot))
        assert await database.get_first_message(CHANNEL.id, 77) is None
        speak.assert_not_awaited()
        assert message_handler.messages_processed == 0

    async def test_message_logged(self, message_handler: MessageHandler, database: BotDatabase):
        await message_handler.handle(make_event("hello there"))
        assert await database.get_first_message(CHANNEL.id, ALICE.id) == "hello there"
        assert message_handler.messages_processed == 1


class TestCommands:

    async def test_command_dispatched(self, message_handler: MessageHandler, speak: AsyncMock):
        await message_handler.handle(make_event("$ping"))
        speak.assert_awaited_once_with(CHANNEL, "pong")

    async def test_command_not_indexed(self, message_handler: MessageHandler, database: BotDatabase):
        await message_handler.handle(make_event("$echo some words here"))
        assert await count_markov_rows(database, CHANNEL.id) == 0

    async def test_command_does_not_trigger_hooks(
        self, message_handler: MessageHandler, channel_state: ChannelStateStore, speak: AsyncMock,
    ):
        channel_state.add_hook(CHANNEL.id, Hook("ping", HookMatchType.SUBSTRING, "hooked"))
        await message_handler.handle(make_event("$ping"))
        speak.assert_awaited_once_with(CHANNEL, "pong")


class TestPlainChat:

    async def test_markov_ingested(self, message_handler: MessageHandler, database: BotDatabase):
        await message_handler.handle(make_event("the quick brown fox"))
        assert await count_markov_rows(database, CHANNEL.id) == 3

    async def test_markov_disabled(
        self, database: BotDatabase, dispatcher, markov, emote_cache, channel_state, mock_twitch, speak,
    ):
        config = BotConfig(**make_config_dict(index_markov=False))
        handler = MessageHandler(
            config, database, dispatcher, markov, emote_cache, channel_state,
            mock_twitch, speak, logging.getLogger("test"),
        )
        await handler.handle(make_event("the quick brown fox"))
        assert await count_markov_rows(database, CHANNEL.id) == 0

    async def test_trivia_answer(
        self, message_handler: MessageHandler, channel_state: ChannelStateStore, speak: AsyncMock,
    ):
        await channel_state.start_trivia(CHANNEL.id)
        await message_handler.handle(make_event("  paris "))
        speak.assert_awaited_once_with(CHANNEL, "@alice Correct! 🎉 the answer was Paris")
        assert channel_state.current_trivia(CHANNEL.id) is None

    async def test_wrong_trivia_answer(
        self, message_handler: MessageHandler, channel_state: ChannelStateStore, speak: AsyncMock,
    ):
        await channel_state.start_trivia(CHANNEL.id)
        await message_handler.handle(make_event("lyon"))
        speak.assert_not_awaited()
        assert channel_state.current_trivia(CHANNEL.id) is not None

    async def test_hook_response(
        self, message_handler: MessageHandler, channel_state: ChannelStateStore, speak: AsyncMock,
    ):
        channel_state.add_hook(CHANNEL.id, Hook("!discord", HookMatchType.EXACT, "discord.gg/x"))
        await message_handler.handle(make_event("!discord"))
        speak.assert_awaited_once_with(CHANNEL, "discord.gg/x")

    async def test_step_failure_isolated(
        self, sample_config, database, dispatcher, emote_cache, channel_state, mock_twitch, speak,
    ):
        broken_markov = MagicMock()
        broken_markov.ingest = AsyncMock(side_effect=RuntimeError("disk full"))
        handler = MessageHandler(
            sample_config, database, dispatcher, broken_markov, emote_cache, channel_state,
            mock_twitch, speak, logging.getLogger("test"),
        )
        channel_state.add_hook(CHANNEL.id, Hook("hi", HookMatchType.SUBSTRING, "hello!"))
        await handler.handle(make_event("hi all"))
        speak.assert_awaited_once_with(CHANNEL, "hello!")


class TestAfkAndReminders:

    async def test_afk_return_announced_once(
        self, message_handler: MessageHandler, database: BotDatabase, speak: AsyncMock,
    ):
        await database.set_lurker(ALICE.id, NOW)
        await message_handler.handle(make_event("back", timestamp=NOW + timedelta(minutes=90)))
        speak.assert_awaited_once_with(CHANNEL, "alice is no longer AFK (1h 30m)")

        speak.reset_mock()
        await message_handler.handle(make_event("still here", timestamp=NOW + timedelta(minutes=91)))
        speak.assert_not_awaited()

    async def test_reminder_from_other_user(
        self, message_handler: MessageHandler, database: BotDatabase, speak: AsyncMock,
    ):
        await database.insert_reminder(12, ALICE.id, NOW, "drink water")
        await message_handler.handle(make_event("hey", timestamp=NOW + timedelta(seconds=5)))
        speak.assert_awaited_once_with(CHANNEL, "@alice ⏰ modguy: drink water")
        assert await database.pop_due_reminders(ALICE.id, NOW + timedelta(days=1)) == []

    async def test_reminder_from_self(
        self, message_handler: MessageHandler, database: BotDatabase, speak: AsyncMock,
    ):
        await database.insert_reminder(ALICE.id, ALICE.id, NOW, "stretch")
        await message_handler.handle(make_event("hey", timestamp=NOW))
        speak.assert_awaited_once_with(CHANNEL, "@alice ⏰ yourself: stretch")

    async def test_future_reminder_kept(
        self, message_handler: MessageHandler, database: BotDatabase, speak: AsyncMock,
    ):
        await database.insert_reminder(12, ALICE.id, NOW + timedelta(hours=1), "later")
        await message_handler.handle(make_event("hey", timestamp=NOW))
        speak.assert_not_awaited()
        due = await database.pop_due_reminders(ALICE.id, NOW + timedelta(hours=2))
        assert [r.message for r in due] == ["later"]
