"""Recursive command dispatcher and the pipe / demultiplex / bench operators.

``dispatch`` is the only entry point and never raises. Composition
operators re-enter it with ``is_pipe`` set, which suppresses the inner
call's logging and speaking so only the outermost call is visible.
Every invocation spawned by one outermost call spends from a shared
``ExecutionBudget``; running it dry fails the whole call with ``TOO_DEEP``.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from .commands import require_privilege
from .errors import BotError, CollaboratorError, MissingArgumentError, NotFoundError, OutOfBoundsError
from .models import ExecutionBudget

if TYPE_CHECKING:
    from .commands import CommandRegistry
    from .config import BotConfig
    from .database import BotDatabase
    from .identity_cache import IdentityCache
    from .models import Channel, CommandInvocation
    from .web_api import WebApiClient

Speaker = Callable[["Channel", str], Awaitable[None]]

GENERIC_APOLOGY = "error while processing, sorry PoroSad"
TOO_DEEP = "❌ command nesting too deep"
TRANSFORM_VERBS = frozenset({"pastebin", "lower", "upper", "stdout", "devnull", "/dev/null"})


def parse_command(text: str, prefix: str) -> tuple[str, list[str]] | None:
    """Split a command line into (name, args).

    The prefix is removed from the name when present, so stored aliases and
    pipe stages may be written with or without it. "$ foo" yields ("", ["foo"]).
    """
    tokens = text.split()
    if not tokens:
        return None
    name = tokens[0]
    if name.startswith(prefix):
        name = name[len(prefix):]
    return name.lower(), tokens[1:]


class Dispatcher:
    """Resolves invocations: builtin, then alias (empty name), then custom command."""

    def __init__(
        self,
        config: BotConfig,
        registry: CommandRegistry,
        database: BotDatabase,
        identity_cache: IdentityCache,
        web: WebApiClient,
        speak: Speaker,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._db = database
        self._identity = identity_cache
        self._web = web
        self._speak = speak
        self._logger = logger or logging.getLogger("bot.dispatch")

        self._registry.register("pipe", self._cmd_pipe)
        self._registry.register("demultiplex", self._cmd_demultiplex)
        self._registry.register("demux", self._cmd_demultiplex)
        self._registry.register("bench", self._cmd_bench)

    async def dispatch(self, inv: CommandInvocation) -> str | None:
        """Run ``inv``; for an outermost call also log it and speak the reply."""
        self._identity.insert(inv.sender.name, inv.sender.id)
        owns_budget = inv.budget is None
        if owns_budget:
            inv = dataclasses.replace(inv, budget=ExecutionBudget(self._config.dispatch.max_executions))
        started = time.perf_counter()
        output = await self._execute(inv)
        if owns_budget and inv.budget.overrun:
            self._logger.warning("Command %s by %s exhausted its execution budget", inv.name or "<alias>", inv.sender.name)
            output = TOO_DEEP
        if inv.is_pipe:
            return output

        elapsed = time.perf_counter() - started
        if output:
            output = output[: self._config.dispatch.max_message_length]
        try:
            await self._db.log_command(
                inv.sender.id, inv.sender.name, inv.name, inv.args, elapsed, output or "", inv.timestamp,
            )
        except Exception:
            self._logger.exception("Failed to log command %s", inv.name)

        if output:
            try:
                await self._speak(inv.channel, output)
            except Exception:
                self._logger.exception("Failed to send reply in %s", inv.channel.name)
        return output

    async def _execute(self, inv: CommandInvocation) -> str | None:
        if inv.depth > self._config.dispatch.max_depth:
            return TOO_DEEP
        if inv.budget is not None and not inv.budget.spend():
            return TOO_DEEP
        try:
            handler = self._registry.get(inv.name)
            if handler is not None:
                return await handler(inv)
            if inv.name == "":
                return await self._expand_alias(inv)
            return await self._run_custom_command(inv)
        except BotError as e:
            return f"❌ {e}"
        except Exception:
            self._logger.exception("Command %s failed for %s", inv.name or "<alias>", inv.sender.name)
            return GENERIC_APOLOGY

    async def _expand_alias(self, inv: CommandInvocation) -> str | None:
        if not inv.args:
            raise MissingArgumentError("missing alias name")
        expansion = await self._registry.get_alias(inv.sender.id, inv.args[0])
        if expansion is None:
            raise NotFoundError("alias not recognized")
        parsed = parse_command(expansion, self._config.prefix)
        if parsed is None:
            return "❌ alias faulty"
        name, args = parsed
        return await self._execute(inv.derive(name, args))

    async def _run_custom_command(self, inv: CommandInvocation) -> str | None:
        command = await self._registry.use_custom_command(inv.channel.id, inv.name)
        if command is None:
            return "❌ command not recognized"
        return command.render(inv.args)

    def _subcommand(self, inv: CommandInvocation, tokens: list[str]) -> CommandInvocation | None:
        parsed = parse_command(" ".join(tokens), self._config.prefix)
        if parsed is None:
            return None
        name, args = parsed
        return inv.derive(name, args, is_pipe=True)

    # ══════════════════════════════════════════════════════════
    #  Composition operators
    # ══════════════════════════════════════════════════════════

    async def _cmd_pipe(self, inv: CommandInvocation) -> str | None:
        """pipe <cmd> | <cmd|verb> | ...

        Ordinary stages do not read the accumulator: each runs on its own
        arguments and, when it replies, replaces the accumulator. Only the
        transform verbs operate on what is currently held.
        """
        stages = [s.strip() for s in " ".join(inv.args).split("|")]
        if len(stages) < 2:
            return "❌ no command to pipe"

        accumulator = ""
        for i, stage in enumerate(stages, start=1):
            verb = stage.lower()
            if verb in TRANSFORM_VERBS:
                accumulator = await self._transform(verb, accumulator)
                continue
            sub = self._subcommand(inv, stage.split())
            if sub is None:
                return f"❌ pipe stage {i} is empty"
            output = await self.dispatch(sub)
            if output is not None:
                accumulator = output
        return accumulator or None

    async def _transform(self, verb: str, text: str) -> str:
        if verb == "lower":
            return text.lower()
        if verb == "upper":
            return text.upper()
        if verb in ("devnull", "/dev/null"):
            return ""
        if verb == "pastebin":
            url = await self._web.upload_paste(text)
            if url is None:
                raise CollaboratorError("paste upload failed")
            return url
        return text

    async def _cmd_demultiplex(self, inv: CommandInvocation) -> str | None:
        """demultiplex <count> <cmd...>: run a command up to N times."""
        require_privilege(inv)
        if not inv.args:
            raise MissingArgumentError("no repeat count provided")
        try:
            count = int(inv.args[0])
        except ValueError:
            raise OutOfBoundsError("repeat count must be a number") from None
        count = max(1, min(self._config.dispatch.demultiplex_max, count))

        sub = self._subcommand(inv, inv.args[1:])
        if sub is None:
            return "❌ no command provided"

        outputs = []
        for _ in range(count):
            if sub.budget is not None and sub.budget.overrun:
                break
            output = await self.dispatch(sub)
            if output:
                outputs.append(output)
        return " ".join(outputs) or None

    async def _cmd_bench(self, inv: CommandInvocation) -> str | None:
        sub = self._subcommand(inv, inv.args)
        if sub is None:
            return "❌ no command provided"
        started = time.perf_counter()
        await self.dispatch(sub)
        return f"📡 {int((time.perf_counter() - started) * 1000)} ms"
