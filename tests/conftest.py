"""Shared test fixtures for channel-bot."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from channel_bot.channel_state import ChannelStateStore
from channel_bot.commands import CommandRegistry
from channel_bot.config import BotConfig
from channel_bot.database import BotDatabase, ChannelTable, channel_table
from channel_bot.dispatcher import Dispatcher, parse_command
from channel_bot.emote_cache import EmoteCache
from channel_bot.identity_cache import IdentityCache
from channel_bot.markov import MarkovStore
from channel_bot.message_handler import MessageHandler
from channel_bot.models import Channel, ChatEvent, CommandInvocation, Sender, TriviaQuestion
from channel_bot.utils import now_utc

CHANNEL = Channel(id=1001, name="testchannel")
OTHER_CHANNEL = Channel(id=1002, name="otherchannel")

ALICE = Sender(id=11, name="alice", display_name="Alice")
MOD = Sender(id=12, name="modguy", display_name="ModGuy", badges=frozenset({"moderator"}))

KNOWN_USERS = {
    "alice": 11,
    "modguy": 12,
    "bob": 21,
    "testchannel": 1001,
    "otherchannel": 1002,
}


# ── Minimal config dict matching BotConfig schema ────────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "twitch": {
            "client_id": "cid",
            "client_secret": "secret",
            "bot_id": "999",
            "owner_id": "12",
            "access_token": "token",
        },
        "channels": ["testchannel", "otherchannel"],
        "disregarded_users": ["NightBot"],
        "prefix": "$",
        "database": {"path": ":memory:"},
    }
    base.update(overrides)
    return base


def make_invocation(
    text: str,
    sender: Sender = ALICE,
    channel: Channel = CHANNEL,
    timestamp: datetime | None = None,
    **kwargs,
) -> CommandInvocation:
    """Build an invocation from a command line such as "$ping"."""
    name, args = parse_command(text, "$")
    return CommandInvocation(
        name=name,
        args=args,
        sender=sender,
        channel=channel,
        timestamp=timestamp or now_utc(),
        **kwargs,
    )


def make_event(
    text: str,
    sender: Sender = ALICE,
    channel: Channel = CHANNEL,
    timestamp: datetime | None = None,
    emotes: list[str] | None = None,
) -> ChatEvent:
    return ChatEvent(
        sender=sender,
        channel=channel,
        text=text,
        timestamp=timestamp or now_utc(),
        emotes=emotes or [],
    )


def make_question(**overrides) -> TriviaQuestion:
    base = {
        "question": "What is the capital of France?",
        "correct_answer": "Paris",
        "incorrect_answers": ["Lyon", "Nice", "Lille"],
        "category": "Geography",
        "difficulty": "easy",
    }
    base.update(overrides)
    return TriviaQuestion(**base)


# ══════════════════════════════════════════════════════════
#  Direct database reads
# ══════════════════════════════════════════════════════════

async def count_markov_rows(db: BotDatabase, channel_id: int) -> int:
    table = channel_table(ChannelTable.MARKOV, channel_id)
    loop = asyncio.get_running_loop()

    def _count() -> int:
        conn = db._get_connection()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        finally:
            conn.close()

    return await loop.run_in_executor(None, _count)


async def command_history(db: BotDatabase, limit: int = 10) -> list[dict]:
    """Most recent command_history rows, newest first, with args decoded."""
    loop = asyncio.get_running_loop()

    def _read() -> list[dict]:
        conn = db._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM command_history ORDER BY id DESC LIMIT ?", (limit,),
            ).fetchall()
            return [{**dict(r), "args": json.loads(r["args"])} for r in rows]
        finally:
            conn.close()

    return await loop.run_in_executor(None, _read)


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a config dict suitable for tests."""
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> BotConfig:
    """Return a parsed BotConfig."""
    return BotConfig(**sample_config_dict)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Return a temporary SQLite database path."""
    return str(tmp_path / "test_bot.db")


@pytest_asyncio.fixture
async def database(tmp_db_path: str) -> AsyncGenerator[BotDatabase, None]:
    """Provide an initialized database with both test channels' tables."""
    db = BotDatabase(tmp_db_path, logging.getLogger("test"))
    await db.initialize()
    await db.create_channel_tables(CHANNEL.id)
    await db.create_channel_tables(OTHER_CHANNEL.id)
    yield db


@pytest.fixture
def mock_twitch() -> MagicMock:
    """Return a mock TwitchApiClient with async methods."""
    twitch = MagicMock()

    async def _resolve_id(login: str):
        return KNOWN_USERS.get(login.lower())

    async def _resolve_name(user_id: int):
        for name, uid in KNOWN_USERS.items():
            if uid == user_id:
                return name
        return None

    twitch.resolve_id = AsyncMock(side_effect=_resolve_id)
    twitch.resolve_name = AsyncMock(side_effect=_resolve_name)
    twitch.get_stream = AsyncMock(return_value=None)
    twitch.is_live = AsyncMock(return_value=False)
    twitch.get_chatters = AsyncMock(return_value=None)
    twitch.get_account_created = AsyncMock(return_value=None)
    twitch.get_follow_date = AsyncMock(return_value=None)
    return twitch


@pytest.fixture
def mock_web() -> MagicMock:
    """Return a mock WebApiClient with async methods."""
    web = MagicMock()
    web.fetch_trivia_question = AsyncMock(return_value=make_question())
    web.get_channel_emotes = AsyncMock(return_value=[])
    web.get_global_emotes = AsyncMock(return_value=[])
    web.translate = AsyncMock(return_value=None)
    web.upload_paste = AsyncMock(return_value="https://paste.rs/abc")
    web.get_weather = AsyncMock(return_value=None)
    web.query_wikipedia = AsyncMock(return_value=None)
    web.query_dictionary = AsyncMock(return_value=None)
    web.query_urban_dictionary = AsyncMock(return_value=None)
    web.get_reddit_post = AsyncMock(return_value=None)
    return web


@pytest.fixture
def speak() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def identity_cache(mock_twitch: MagicMock) -> IdentityCache:
    return IdentityCache(mock_twitch.resolve_id, logging.getLogger("test"))


@pytest.fixture
def emote_cache() -> EmoteCache:
    return EmoteCache(logger=logging.getLogger("test"))


@pytest.fixture
def channel_state(mock_web: MagicMock) -> ChannelStateStore:
    store = ChannelStateStore(mock_web.fetch_trivia_question, logging.getLogger("test"))
    store.register_channel(CHANNEL.id)
    store.register_channel(OTHER_CHANNEL.id)
    return store


@pytest.fixture
def markov(database: BotDatabase) -> MarkovStore:
    return MarkovStore(database, logging.getLogger("test"), rng=random.Random(7))


@pytest.fixture
def registry(
    sample_config: BotConfig,
    database: BotDatabase,
    identity_cache: IdentityCache,
    channel_state: ChannelStateStore,
    markov: MarkovStore,
    mock_twitch: MagicMock,
    mock_web: MagicMock,
) -> CommandRegistry:
    reg = CommandRegistry(
        sample_config, database, identity_cache, channel_state, markov,
        mock_twitch, mock_web, logging.getLogger("test"),
    )
    reg.set_channels([CHANNEL, OTHER_CHANNEL])
    return reg


@pytest.fixture
def dispatcher(
    sample_config: BotConfig,
    registry: CommandRegistry,
    database: BotDatabase,
    identity_cache: IdentityCache,
    mock_web: MagicMock,
    speak: AsyncMock,
) -> Dispatcher:
    return Dispatcher(
        sample_config, registry, database, identity_cache, mock_web, speak,
        logging.getLogger("test"),
    )


@pytest.fixture
def message_handler(
    sample_config: BotConfig,
    database: BotDatabase,
    dispatcher: Dispatcher,
    markov: MarkovStore,
    emote_cache: EmoteCache,
    channel_state: ChannelStateStore,
    mock_twitch: MagicMock,
    speak: AsyncMock,
) -> MessageHandler:
    return MessageHandler(
        sample_config, database, dispatcher, markov, emote_cache, channel_state,
        mock_twitch, speak, logging.getLogger("test"),
    )
