"""Builtin command table and lookups of per-channel commands and user aliases.

Handlers take a CommandInvocation and return the reply text (or None for
silence). Malformed input gets a "❌ ..." reply; privilege failures and
collaborator outages raise BotError subclasses for the dispatcher to render.
"""

from __future__ import annotations

import logging
import random
from datetime import timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from .errors import CollaboratorError, InsufficientPrivilegeError, OutOfBoundsError
from .models import Channel, ChannelCommand, CommandInvocation, CommandKind, Hook, HookMatchType
from .utils import fmt_age, fmt_duration, now_utc, parse_hm, parse_lang_pair, parse_timestamp

if TYPE_CHECKING:
    from .channel_state import ChannelStateStore
    from .config import BotConfig
    from .database import BotDatabase
    from .identity_cache import IdentityCache
    from .markov import MarkovStore
    from .twitch_api import TwitchApiClient
    from .web_api import WebApiClient

Handler = Callable[[CommandInvocation], Awaitable[Optional[str]]]

TRIVIA_DIFFICULTIES = {"easy", "medium", "hard"}
TRIVIA_TYPES = {"multiple", "boolean"}
HOOK_SEPARATOR = "=>"


def require_privilege(inv: CommandInvocation) -> None:
    if not inv.sender.is_privileged:
        raise InsufficientPrivilegeError()


class CommandRegistry:
    """Static builtin table plus storage-backed custom commands and aliases."""

    def __init__(
        self,
        config: BotConfig,
        database: BotDatabase,
        identity_cache: IdentityCache,
        channel_state: ChannelStateStore,
        markov: MarkovStore,
        twitch: TwitchApiClient,
        web: WebApiClient,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._db = database
        self._identity = identity_cache
        self._state = channel_state
        self._markov = markov
        self._twitch = twitch
        self._web = web
        self._logger = logger or logging.getLogger("bot.commands")
        self._channels: dict[str, Channel] = {}

        self._builtins: dict[str, Handler] = {
            "ping": self._cmd_ping,
            "help": self._cmd_help,
            "commands": self._cmd_help,
            "echo": self._cmd_echo,
            "say": self._cmd_echo,
            "decide": self._cmd_decide,
            "translate": self._cmd_translate,
            "markov": self._cmd_markov,
            "setcmd": self._cmd_setcmd,
            "newcmd": self._cmd_setcmd,
            "delcmd": self._cmd_delcmd,
            "setalias": self._cmd_setalias,
            "rmalias": self._cmd_rmalias,
            "sethook": self._cmd_sethook,
            "rmhook": self._cmd_rmhook,
            "trivia": self._cmd_trivia,
            "hint": self._cmd_hint,
            "giveup": self._cmd_giveup,
            "suggest": self._cmd_suggest,
            "explain": self._cmd_explain,
            "lurk": self._cmd_lurk,
            "remindme": self._cmd_remindme,
            "remind": self._cmd_remind,
            "clearreminders": self._cmd_clearreminders,
            "rmrm": self._cmd_clearreminders,
            "first": self._cmd_first,
            "offlinetime": self._cmd_offlinetime,
            "wordratio": self._cmd_wordratio,
            "chatstats": self._cmd_chatstats,
            "rose": self._cmd_rose,
            "uptime": self._cmd_uptime,
            "accage": self._cmd_accage,
            "followage": self._cmd_followage,
            "weather": self._cmd_weather,
            "wiki": self._cmd_wiki,
            "define": self._cmd_define,
            "urban": self._cmd_urban,
            "reddit": self._cmd_reddit,
        }

    # ══════════════════════════════════════════════════════════
    #  Lookup
    # ══════════════════════════════════════════════════════════

    def register(self, name: str, handler: Handler) -> None:
        self._builtins[name] = handler

    def get(self, name: str) -> Handler | None:
        return self._builtins.get(name)

    def names(self) -> list[str]:
        return sorted(self._builtins)

    def set_channels(self, channels: list[Channel]) -> None:
        """Channels with sharded tables; cross-channel lookups are limited to these."""
        self._channels = {c.name.lower(): c for c in channels}

    async def use_custom_command(self, channel_id: int, name: str) -> ChannelCommand | None:
        return await self._db.use_channel_command(channel_id, name)

    async def get_alias(self, owner_id: int, alias: str) -> str | None:
        return await self._db.get_alias(owner_id, alias)

    # ══════════════════════════════════════════════════════════
    #  Helpers
    # ══════════════════════════════════════════════════════════

    async def _user_id(self, inv: CommandInvocation, name: str) -> int | None:
        if name.lower() == inv.sender.name.lower():
            return inv.sender.id
        return await self._identity.resolve(name.lstrip("@"))

    def _tracked_channel(self, name: str) -> Channel | None:
        return self._channels.get(name.lstrip("#").lower())

    def _strip_prefix(self, name: str) -> str:
        if name.startswith(self._config.prefix):
            name = name[1:]
        return name.lower()

    # ══════════════════════════════════════════════════════════
    #  Basics
    # ══════════════════════════════════════════════════════════

    async def _cmd_ping(self, inv: CommandInvocation) -> str | None:
        return "pong"

    async def _cmd_help(self, inv: CommandInvocation) -> str | None:
        return f"📜 commands: {', '.join(self.names())}"

    async def _cmd_echo(self, inv: CommandInvocation) -> str | None:
        require_privilege(inv)
        return " ".join(inv.args) or None

    async def _cmd_decide(self, inv: CommandInvocation) -> str | None:
        options = [o.strip() for o in " ".join(inv.args).split(",") if o.strip()]
        if not options:
            return "❌ no options provided"
        return f"🎱 I choose... {random.choice(options)}"

    async def _cmd_translate(self, inv: CommandInvocation) -> str | None:
        if len(inv.args) < 2:
            return "❌ insufficient args"
        langs = parse_lang_pair(inv.args[0])
        if langs is None:
            return "❌ bad formatting, expected e.g. (en,de)"
        translated = await self._web.translate(langs[0], langs[1], " ".join(inv.args[1:]))
        if translated is None:
            raise CollaboratorError("translation failed")
        return translated

    async def _cmd_markov(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ insufficient args"
        count = None
        if len(inv.args) > 1:
            try:
                count = int(inv.args[1])
            except ValueError:
                raise OutOfBoundsError("expected an integer") from None
        words = await self._markov.sample(inv.channel.id, inv.args[0], count)
        if words is None:
            return "❌ word not indexed yet | E1"
        return f"🔮 {' '.join(words)}"

    # ══════════════════════════════════════════════════════════
    #  Custom commands, aliases, hooks
    # ══════════════════════════════════════════════════════════

    async def _cmd_setcmd(self, inv: CommandInvocation) -> str | None:
        require_privilege(inv)
        if not inv.args:
            return "❌ no name provided"
        name = self._strip_prefix(inv.args[0])
        if not name:
            return "❌ no name provided"
        if name in self._builtins:
            return f"❌ {name} is a builtin command"
        if len(inv.args) < 2:
            return "❌ no type provided"
        kind = CommandKind.parse(inv.args[1])
        if kind is None:
            return "❌ command type not recognized, use templ, paste or incr"
        if len(inv.args) < 3:
            return "❌ no expression provided"
        await self._db.set_channel_command(inv.channel.id, name, kind, " ".join(inv.args[2:]))
        self._logger.info("%s set command %s (%s) in %s", inv.sender.name, name, kind.value, inv.channel.name)
        return "🔧 command created successfully"

    async def _cmd_delcmd(self, inv: CommandInvocation) -> str | None:
        require_privilege(inv)
        if not inv.args:
            return "❌ no command name provided"
        removed = await self._db.remove_channel_command(inv.channel.id, self._strip_prefix(inv.args[0]))
        if not removed:
            return "❌ no such command existed"
        return "✅ removed successfully"

    async def _cmd_setalias(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no alias name provided"
        if len(inv.args) < 2:
            return "❌ no alias command provided"
        await self._db.set_alias(inv.sender.id, inv.args[0], " ".join(inv.args[1:]))
        return "✅ alias created"

    async def _cmd_rmalias(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no alias provided"
        if not await self._db.remove_alias(inv.sender.id, inv.args[0]):
            return "❌ no such alias"
        return "✅ alias removed"

    async def _cmd_sethook(self, inv: CommandInvocation) -> str | None:
        """sethook <exact|substring> <trigger...> => <response...>"""
        require_privilege(inv)
        usage = f"❌ usage: sethook <exact|substring> <trigger> {HOOK_SEPARATOR} <response>"
        if len(inv.args) < 2:
            return usage
        try:
            match_type = HookMatchType(inv.args[0].lower())
        except ValueError:
            return usage
        trigger, sep, response = " ".join(inv.args[1:]).partition(HOOK_SEPARATOR)
        trigger, response = trigger.strip(), response.strip()
        if not sep or not trigger or not response:
            return usage
        hook = Hook(trigger=trigger, match_type=match_type, response=response)
        await self._db.save_hook(inv.channel.id, hook)
        self._state.add_hook(inv.channel.id, hook)
        return "🪝 hook set"

    async def _cmd_rmhook(self, inv: CommandInvocation) -> str | None:
        require_privilege(inv)
        trigger = " ".join(inv.args).strip()
        if not trigger:
            return "❌ no hook trigger provided"
        await self._db.delete_hook(inv.channel.id, trigger)
        if not self._state.remove_hook(inv.channel.id, trigger):
            return "❌ no such hook"
        return "✅ hook removed"

    # ══════════════════════════════════════════════════════════
    #  Trivia
    # ══════════════════════════════════════════════════════════

    async def _cmd_trivia(self, inv: CommandInvocation) -> str | None:
        """trivia [easy|medium|hard] [multiple|boolean] [category number]"""
        difficulty = question_type = category = None
        for arg in inv.args:
            value = arg.lower()
            if value in TRIVIA_DIFFICULTIES:
                difficulty = value
            elif value in TRIVIA_TYPES:
                question_type = value
            elif value.isdigit():
                category = value
            else:
                return f"❌ unknown trivia option {arg}"

        question = await self._state.start_trivia(inv.channel.id, category, difficulty, question_type)
        if question is None:
            return "❌ a trivia game is already running, try hint or giveup"
        return f"❓ [{question.category} | {question.difficulty}] {question.question}"

    async def _cmd_hint(self, inv: CommandInvocation) -> str | None:
        answers = self._state.hint(inv.channel.id)
        if answers is None:
            return "❌ no trivia game running"
        return f"💡 {' / '.join(answers)}"

    async def _cmd_giveup(self, inv: CommandInvocation) -> str | None:
        question = self._state.give_up(inv.channel.id)
        if question is None:
            return "❌ no trivia game running"
        return f"🏳️ the answer was: {question.correct_answer}"

    # ══════════════════════════════════════════════════════════
    #  Users: feedback, AFK, reminders
    # ══════════════════════════════════════════════════════════

    async def _cmd_suggest(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no message"
        await self._db.save_suggestion(inv.sender.id, inv.sender.name, " ".join(inv.args), now_utc())
        return "✅ suggestion saved"

    async def _cmd_explain(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no error code provided"
        explanation = await self._db.get_explanation(inv.args[0])
        if explanation is None:
            return "❌ no such explanation"
        return explanation

    async def _cmd_lurk(self, inv: CommandInvocation) -> str | None:
        await self._db.set_lurker(inv.sender.id, inv.timestamp)
        return f"{inv.sender.name} is now AFK"

    async def _add_reminder(self, inv: CommandInvocation, for_self: bool) -> str | None:
        delay = parse_hm(inv.args[0]) if inv.args else None
        if delay is None:
            return "❌ bad time formatting, expected e.g. (1h,30m)"

        if for_self:
            target_id, rest = inv.sender.id, inv.args[1:]
        else:
            if len(inv.args) < 2:
                return "❌ no name provided"
            target_id, rest = await self._user_id(inv, inv.args[1]), inv.args[2:]
            if target_id is None:
                return f"❌ user {inv.args[1]} does not exist"

        if not rest:
            return "❌ no message provided"
        await self._db.insert_reminder(inv.sender.id, target_id, inv.timestamp + delay, " ".join(rest))
        return "✅ set successfully"

    async def _cmd_remindme(self, inv: CommandInvocation) -> str | None:
        return await self._add_reminder(inv, for_self=True)

    async def _cmd_remind(self, inv: CommandInvocation) -> str | None:
        return await self._add_reminder(inv, for_self=False)

    async def _cmd_clearreminders(self, inv: CommandInvocation) -> str | None:
        cleared = await self._db.clear_sent_reminders(inv.sender.id)
        if not cleared:
            return "❌ no reminders set, nothing happened"
        return f"✅ cleared {cleared} reminders"

    # ══════════════════════════════════════════════════════════
    #  Chat history
    # ══════════════════════════════════════════════════════════

    async def _cmd_first(self, inv: CommandInvocation) -> str | None:
        """first [user] [channel]"""
        name = inv.args[0] if inv.args else inv.sender.name
        user_id = await self._user_id(inv, name)
        if user_id is None:
            return f"❌ user {name} does not exist"

        channel = inv.channel
        if len(inv.args) > 1:
            channel = self._tracked_channel(inv.args[1])
            if channel is None:
                return f"❌ channel {inv.args[1]} is not tracked"

        message = await self._db.get_first_message(channel.id, user_id)
        if message is None:
            return "❌ nothing found | E2"
        return message

    async def _cmd_offlinetime(self, inv: CommandInvocation) -> str | None:
        """offlinetime [user] [channel]"""
        name = inv.args[0] if inv.args else inv.sender.name
        user_id = await self._user_id(inv, name)
        if user_id is None:
            return f"❌ user {name} does not exist"

        channel = inv.channel
        if len(inv.args) > 1:
            channel = self._tracked_channel(inv.args[1])
            if channel is None:
                return f"❌ channel {inv.args[1]} is not tracked"

        seconds = await self._db.get_offline_time(channel.id, user_id)
        return f"{name} has spent {fmt_duration(seconds)} in {channel.name}'s offline chat!"

    async def _cmd_wordratio(self, inv: CommandInvocation) -> str | None:
        """wordratio [user] <word>"""
        if not inv.args:
            return "❌ no word provided"
        if len(inv.args) == 1:
            name, user_id, word = inv.sender.name, inv.sender.id, inv.args[0]
        else:
            name, word = inv.args[0], inv.args[1]
            user_id = await self._user_id(inv, name)
            if user_id is None:
                return "❌ user does not exist"

        ratio = await self._db.get_word_ratio(inv.channel.id, user_id, word, self._config.prefix)
        if ratio is None:
            return f"❌ no tracked messages from {name}"
        return f"{ratio * 100:.2f}% of tracked {name}'s messages in this channel contain the word {word}"

    async def _cmd_chatstats(self, inv: CommandInvocation) -> str | None:
        """chatstats [all|24h] [N]"""
        since = None
        period = "all time"
        top = 3
        for arg in inv.args:
            value = arg.lower()
            if value in ("24", "24h", "day", "last24hours"):
                since = inv.timestamp - timedelta(hours=24)
                period = "last 24h"
            elif value in ("all", "alltime"):
                since, period = None, "all time"
            elif value.isdigit():
                top = max(1, min(5, int(value)))
            else:
                return "❌ usage: chatstats [all|24h] [1-5]"

        rows = await self._db.get_top_chatters(inv.channel.id, top, since)
        if not rows:
            return "❌ no messages logged yet"
        ranking = ", ".join(f"{i}. {name} ({count})" for i, (name, count) in enumerate(rows, start=1))
        return f"📊 top chatters ({period}): {ranking}"

    async def _cmd_rose(self, inv: CommandInvocation) -> str | None:
        chatters = await self._twitch.get_chatters(inv.channel.id) or []
        candidates = [c for c in chatters if not self._config.is_disregarded(c)]
        if not candidates:
            return "❌ no users in the chatroom"
        return f"@{random.choice(candidates)} PeepoGlad 🌹"

    # ══════════════════════════════════════════════════════════
    #  Twitch lookups
    # ══════════════════════════════════════════════════════════

    async def _cmd_uptime(self, inv: CommandInvocation) -> str | None:
        channel = inv.args[0].lstrip("#") if inv.args else inv.channel.name
        stream = await self._twitch.get_stream(channel)
        if stream is None:
            return "❌ streamer not live"
        started = parse_timestamp(stream["started_at"].replace("Z", "+00:00"))
        return f"⏱️ {channel} has been live for {fmt_duration(now_utc() - started)}"

    async def _cmd_accage(self, inv: CommandInvocation) -> str | None:
        name = inv.args[0].lstrip("@") if inv.args else inv.sender.name
        created = await self._twitch.get_account_created(name)
        if created is None:
            return "❌ user not found"
        return f"⏱️ {name}'s account is {fmt_age(created)} old"

    async def _cmd_followage(self, inv: CommandInvocation) -> str | None:
        """followage [user] [channel]"""
        channel_name, channel_id = inv.channel.name, inv.channel.id
        if len(inv.args) > 1:
            channel_name = inv.args[1].lstrip("#")
            channel_id = await self._identity.resolve(channel_name)
            if channel_id is None:
                return f"❌ channel {channel_name} does not exist"

        user_name = inv.args[0].lstrip("@") if inv.args else inv.sender.name
        user_id = await self._user_id(inv, user_name)
        if user_id is None:
            return f"❌ user {user_name} does not exist"

        followed = await self._twitch.get_follow_date(channel_id, user_id)
        if followed is None:
            return f"❌ {user_name} does not follow {channel_name}"
        return f"⏱️ {user_name} has been following {channel_name} for {fmt_age(followed)}"

    # ══════════════════════════════════════════════════════════
    #  Web lookups
    # ══════════════════════════════════════════════════════════

    async def _cmd_weather(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no location provided"
        report = await self._web.get_weather(" ".join(inv.args))
        return report or "❌ location not identified"

    async def _cmd_wiki(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no title provided"
        summary = await self._web.query_wikipedia(" ".join(inv.args))
        return summary or "❌ Article not found."

    async def _cmd_define(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ No word provided"
        definition = await self._web.query_dictionary(inv.args[0])
        return definition or "❌ word not found"

    async def _cmd_urban(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no term provided"
        definition = await self._web.query_urban_dictionary(" ".join(inv.args))
        return definition or "❌ not found"

    async def _cmd_reddit(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            return "❌ no subreddit provided"
        subreddit = inv.args[0].removeprefix("/").removeprefix("r/")
        post = await self._web.get_reddit_post(subreddit)
        return post or "❌ nothing found"
