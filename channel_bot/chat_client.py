"""Twitch chat transport built on twitchio's EventSub bot.

The client only converts and enqueues inbound messages; a single consumer
task in the app processes them in arrival order. Replies go out through
the Helix send-chat-message endpoint as the bot account.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import twitchio
from twitchio import eventsub
from twitchio.ext import commands

from .models import Channel, ChatEvent, Sender

if TYPE_CHECKING:
    from .config import BotConfig

MAX_CHAT_LENGTH = 500


def to_chat_event(payload: twitchio.ChatMessage) -> ChatEvent:
    """Flatten a twitchio chat payload into the bot's own event type."""
    chatter = payload.chatter
    badges = frozenset(b.set_id for b in payload.badges or [])
    emotes = [f.text for f in payload.fragments or [] if f.type == "emote"]
    return ChatEvent(
        sender=Sender(
            id=int(chatter.id),
            name=(chatter.name or "").lower(),
            display_name=chatter.display_name or chatter.name or "",
            badges=badges,
        ),
        channel=Channel(id=int(payload.broadcaster.id), name=(payload.broadcaster.name or "").lower()),
        text=payload.text,
        timestamp=payload.timestamp,
        emotes=emotes,
    )


class ChatClient(commands.Bot):
    """EventSub chat listener for the configured channels."""

    def __init__(
        self,
        config: BotConfig,
        channels: list[Channel],
        queue: asyncio.Queue[ChatEvent],
        logger: logging.Logger | None = None,
    ) -> None:
        self._bot_config = config
        self._channels = channels
        self._queue = queue
        self._logger = logger or logging.getLogger("bot.chat")
        super().__init__(
            client_id=config.twitch.client_id,
            client_secret=config.twitch.client_secret,
            bot_id=config.twitch.bot_id,
            owner_id=config.twitch.owner_id or None,
            prefix=config.prefix,
        )

    async def setup_hook(self) -> None:
        if self._bot_config.twitch.access_token:
            await self.add_token(
                self._bot_config.twitch.access_token,
                self._bot_config.twitch.refresh_token,
            )
        for channel in self._channels:
            subscription = eventsub.ChatMessageSubscription(
                broadcaster_user_id=str(channel.id), user_id=self.bot_id,
            )
            await self.subscribe_websocket(payload=subscription, as_bot=True)
            self._logger.info("Subscribed to chat of %s (%d)", channel.name, channel.id)

    async def event_ready(self) -> None:
        self._logger.info("Chat client ready as %s", self.bot_id)

    async def event_message(self, payload: twitchio.ChatMessage) -> None:
        # Commands are routed by our own dispatcher, not twitchio's.
        if payload.chatter.id == self.bot_id:
            return
        try:
            self._queue.put_nowait(to_chat_event(payload))
        except Exception:
            self._logger.exception("Could not enqueue chat message")

    async def send(self, channel: Channel, text: str) -> None:
        """Post ``text`` in ``channel`` as the bot."""
        broadcaster = self.create_partialuser(user_id=str(channel.id))
        await broadcaster.send_message(message=text[:MAX_CHAT_LENGTH], sender=self.bot_id)
