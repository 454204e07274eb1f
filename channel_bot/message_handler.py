"""Inbound chat pipeline: everything that happens to one chat message.

Order per message: disregard filter, raw log, AFK return, due reminders,
then either command dispatch or (for plain chat) Markov ingestion, trivia
answer check and hook matching. Each step fails on its own: an error is
logged and the remaining steps still run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .dispatcher import parse_command
from .models import CommandInvocation
from .utils import fmt_duration

if TYPE_CHECKING:
    from .channel_state import ChannelStateStore
    from .config import BotConfig
    from .database import BotDatabase
    from .dispatcher import Dispatcher, Speaker
    from .emote_cache import EmoteCache
    from .markov import MarkovStore
    from .models import ChatEvent
    from .twitch_api import TwitchApiClient


class MessageHandler:
    """Processes chat events handed over by the single consumer task."""

    def __init__(
        self,
        config: BotConfig,
        database: BotDatabase,
        dispatcher: Dispatcher,
        markov: MarkovStore,
        emote_cache: EmoteCache,
        channel_state: ChannelStateStore,
        twitch: TwitchApiClient,
        speak: Speaker,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._db = database
        self._dispatcher = dispatcher
        self._markov = markov
        self._emotes = emote_cache
        self._state = channel_state
        self._twitch = twitch
        self._speak = speak
        self._logger = logger or logging.getLogger("bot.messages")
        self.messages_processed = 0

    async def handle(self, event: ChatEvent) -> None:
        if self._config.is_disregarded(event.sender.name):
            return
        self.messages_processed += 1

        try:
            await self._db.log_message(
                event.channel.id,
                event.sender.id,
                event.sender.name,
                event.sender.badges,
                event.timestamp,
                event.text,
            )
        except Exception:
            self._logger.exception("Failed to log message from %s", event.sender.name)

        try:
            await self._announce_return(event)
        except Exception:
            self._logger.exception("AFK check failed for %s", event.sender.name)

        try:
            await self._deliver_reminders(event)
        except Exception:
            self._logger.exception("Reminder delivery failed for %s", event.sender.name)

        if event.text.startswith(self._config.prefix):
            await self._handle_command(event)
            return

        if self._config.index_markov:
            try:
                await self._markov.ingest(
                    event.channel.id, event.text, self._emotes, event.channel.name, event.emotes,
                )
            except Exception:
                self._logger.exception("Markov ingestion failed in %s", event.channel.name)

        try:
            await self._check_trivia(event)
        except Exception:
            self._logger.exception("Trivia check failed in %s", event.channel.name)

        try:
            await self._check_hooks(event)
        except Exception:
            self._logger.exception("Hook check failed in %s", event.channel.name)

    async def _handle_command(self, event: ChatEvent) -> None:
        parsed = parse_command(event.text, self._config.prefix)
        if parsed is None:
            return
        name, args = parsed
        invocation = CommandInvocation(
            name=name,
            args=args,
            sender=event.sender,
            channel=event.channel,
            timestamp=event.timestamp,
        )
        await self._dispatcher.dispatch(invocation)

    async def _announce_return(self, event: ChatEvent) -> None:
        since = await self._db.pop_lurker(event.sender.id)
        if since is None:
            return
        away = fmt_duration(event.timestamp - since)
        await self._speak(event.channel, f"{event.sender.name} is no longer AFK ({away})")

    async def _deliver_reminders(self, event: ChatEvent) -> None:
        reminders = await self._db.pop_due_reminders(event.sender.id, event.timestamp)
        for reminder in reminders:
            if reminder.from_user_id == event.sender.id:
                from_name = "yourself"
            else:
                from_name = await self._twitch.resolve_name(reminder.from_user_id) or "someone"
            await self._speak(
                event.channel, f"@{event.sender.name} ⏰ {from_name}: {reminder.message}",
            )

    async def _check_trivia(self, event: ChatEvent) -> None:
        question = self._state.evaluate_answer(event.channel.id, event.text)
        if question is None:
            return
        await self._speak(
            event.channel,
            f"@{event.sender.name} Correct! 🎉 the answer was {question.correct_answer}",
        )

    async def _check_hooks(self, event: ChatEvent) -> None:
        hook = self._state.match_hook(event.channel.id, event.text)
        if hook is not None:
            await self._speak(event.channel, hook.response)
