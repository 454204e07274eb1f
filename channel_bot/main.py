"""Service orchestrator: BotApp.

config → DB init → collaborators → channel ids/tables → state & caches →
dispatcher → workers → consumer task → chat transport (blocks).
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from . import __version__
from .channel_state import ChannelStateStore
from .chat_client import ChatClient
from .commands import CommandRegistry
from .config import BotConfig, load_config
from .database import BotDatabase
from .dispatcher import Dispatcher
from .emote_cache import EmoteCache
from .identity_cache import IdentityCache
from .markov import MarkovStore
from .message_handler import MessageHandler
from .models import Channel, ChatEvent
from .scheduler import BackgroundWorkers
from .twitch_api import TwitchApiClient
from .web_api import WebApiClient


class BotApp:
    """Top-level application orchestrator."""

    def __init__(self, config_path: str) -> None:
        self.config_path = Path(config_path)
        self.logger = logging.getLogger("bot")

        # Components (initialized in start())
        self.config: BotConfig | None = None
        self.db: BotDatabase | None = None
        self.twitch: TwitchApiClient | None = None
        self.web: WebApiClient | None = None
        self.identity_cache: IdentityCache | None = None
        self.emote_cache: EmoteCache | None = None
        self.channel_state: ChannelStateStore | None = None
        self.markov: MarkovStore | None = None
        self.registry: CommandRegistry | None = None
        self.dispatcher: Dispatcher | None = None
        self.handler: MessageHandler | None = None
        self.workers: BackgroundWorkers | None = None
        self.client: ChatClient | None = None

        self.channels: list[Channel] = []
        self._queue: asyncio.Queue[ChatEvent] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None
        self._running = False
        self._start_time: float | None = None

    async def resolve_channels(self) -> list[Channel]:
        """Numeric ids for the configured channel logins; unknown logins are skipped."""
        channels = []
        for name in self.config.channels:
            channel_id = await self.identity_cache.resolve(name)
            if channel_id is None:
                self.logger.error("Channel %s does not exist, skipping", name)
                continue
            channels.append(Channel(id=channel_id, name=name))
        return channels

    async def start(self) -> None:
        """Start the bot and block on the chat transport."""
        self.logger.info("Starting channel-bot...")
        self._start_time = time.time()

        # 1. Load and validate config
        self.config = load_config(str(self.config_path))
        self.logger.info("Config loaded: %d channel(s)", len(self.config.channels))

        # 2. Initialize database
        self.db = BotDatabase(self.config.database.path, self.logger)
        await self.db.initialize()
        self.logger.info("Database initialized: %s", self.config.database.path)

        # 3. External collaborators
        self.twitch = TwitchApiClient(self.config.twitch, logger=self.logger)
        await self.twitch.start()
        self.web = WebApiClient(self.config.api_keys, logger=self.logger)
        await self.web.start()

        # 4. Channels and their sharded tables
        self.identity_cache = IdentityCache(self.twitch.resolve_id, logger=self.logger)
        self.channels = await self.resolve_channels()
        for channel in self.channels:
            await self.db.create_channel_tables(channel.id)

        # 5. Per-channel state and caches
        self.channel_state = ChannelStateStore(self.web.fetch_trivia_question, logger=self.logger)
        for channel in self.channels:
            self.channel_state.register_channel(channel.id, await self.db.get_hooks(channel.id))
        self.emote_cache = EmoteCache(self.web, logger=self.logger)
        await self.emote_cache.refresh(self.channels)
        self.markov = MarkovStore(self.db, logger=self.logger)

        # 6. Transport (not yet connected) and command layer
        self.client = ChatClient(self.config, self.channels, self._queue, logger=self.logger)
        self.registry = CommandRegistry(
            config=self.config,
            database=self.db,
            identity_cache=self.identity_cache,
            channel_state=self.channel_state,
            markov=self.markov,
            twitch=self.twitch,
            web=self.web,
            logger=self.logger,
        )
        self.registry.set_channels(self.channels)
        self.dispatcher = Dispatcher(
            config=self.config,
            registry=self.registry,
            database=self.db,
            identity_cache=self.identity_cache,
            web=self.web,
            speak=self.client.send,
            logger=self.logger,
        )
        self.handler = MessageHandler(
            config=self.config,
            database=self.db,
            dispatcher=self.dispatcher,
            markov=self.markov,
            emote_cache=self.emote_cache,
            channel_state=self.channel_state,
            twitch=self.twitch,
            speak=self.client.send,
            logger=self.logger,
        )

        # 7. Background workers
        self.workers = BackgroundWorkers(
            config=self.config,
            database=self.db,
            identity_cache=self.identity_cache,
            emote_cache=self.emote_cache,
            twitch=self.twitch,
            channels=self.channels,
            logger=self.logger,
        )
        await self.workers.start()

        # 8. Single consumer keeps per-message processing in arrival order
        self._consumer_task = asyncio.create_task(self._consume_loop())

        self._running = True
        self.logger.info("channel-bot started successfully (v%s)", __version__)

        # 9. Block on the chat transport
        await self.client.start()

    async def _consume_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handler.handle(event)
            except Exception:
                self.logger.exception("Unhandled error processing message in %s", event.channel.name)
            finally:
                self._queue.task_done()

    async def stop(self) -> None:
        """Shut down in reverse order whatever start() got as far as creating.

        Safe to call more than once and after a start() that raised part way.
        """
        was_running = self._running
        self._running = False
        if was_running:
            self.logger.info("Shutting down channel-bot...")

        # The transport only connects after _running is set
        if was_running and self.client:
            try:
                await self.client.close()
            except Exception:
                self.logger.exception("Chat client did not close cleanly")
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        if self.workers:
            await self.workers.stop()
        if self.web:
            await self.web.stop()
        if self.twitch:
            await self.twitch.stop()

        if was_running:
            processed = self.handler.messages_processed if self.handler else 0
            self.logger.info("channel-bot stopped after %d message(s).", processed)
