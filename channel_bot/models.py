"""Value types shared across the dispatcher, stores and transport."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

PRIVILEGED_BADGES = frozenset({"moderator", "vip", "broadcaster"})


@dataclass(frozen=True)
class Sender:
    """Chat participant who sent a message or invoked a command."""

    id: int
    name: str
    display_name: str = ""
    badges: frozenset[str] = frozenset()

    @property
    def is_privileged(self) -> bool:
        """Mod, VIP or broadcaster."""
        return bool(self.badges & PRIVILEGED_BADGES)


@dataclass(frozen=True)
class Channel:
    id: int
    name: str


@dataclass
class ChatEvent:
    """One inbound chat message as delivered by the transport."""

    sender: Sender
    channel: Channel
    text: str
    timestamp: datetime
    emotes: list[str] = field(default_factory=list)


@dataclass
class ExecutionBudget:
    """Executions left for one outermost command and everything it spawns."""

    remaining: int
    overrun: bool = False

    def spend(self) -> bool:
        if self.remaining <= 0:
            self.overrun = True
            return False
        self.remaining -= 1
        return True


@dataclass
class CommandInvocation:
    """A parsed command request; re-entrant invocations are derived via ``derive``."""

    name: str
    args: list[str]
    sender: Sender
    channel: Channel
    timestamp: datetime
    is_pipe: bool = False
    depth: int = 0
    budget: ExecutionBudget | None = field(default=None, compare=False, repr=False)

    def derive(self, name: str, args: list[str], *, is_pipe: bool | None = None) -> CommandInvocation:
        """Nested invocation one level deeper, keeping sender, channel, timestamp and budget."""
        return dataclasses.replace(
            self,
            name=name,
            args=list(args),
            is_pipe=self.is_pipe if is_pipe is None else is_pipe,
            depth=self.depth + 1,
        )


# ══════════════════════════════════════════════════════════
#  Custom commands
# ══════════════════════════════════════════════════════════

class CommandKind(Enum):
    TEMPLATE = "templ"
    PASTE = "paste"
    INCREMENTING = "incr"

    @classmethod
    def parse(cls, raw: str) -> CommandKind | None:
        """Map user input to a kind. Returns None if unrecognized."""
        raw = raw.lower()
        if raw == "template":
            return cls.TEMPLATE
        for kind in cls:
            if kind.value == raw:
                return kind
        return None


@dataclass
class ChannelCommand:
    name: str
    kind: CommandKind
    expression: str
    usage_count: int = 0

    def render(self, args: list[str]) -> str:
        if self.kind is CommandKind.TEMPLATE:
            out = self.expression
            for i, arg in enumerate(args, start=1):
                out = out.replace(f"{{{i}}}", arg)
            return out
        if self.kind is CommandKind.INCREMENTING:
            return self.expression.replace("{}", str(self.usage_count))
        return self.expression


# ══════════════════════════════════════════════════════════
#  Hooks & trivia
# ══════════════════════════════════════════════════════════

class HookMatchType(Enum):
    EXACT = "exact"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class Hook:
    """Canned response triggered by a non-command chat message."""

    trigger: str
    match_type: HookMatchType
    response: str

    def matches(self, text: str) -> bool:
        if self.match_type is HookMatchType.EXACT:
            return text.strip() == self.trigger
        return self.trigger.lower() in text.lower()


@dataclass
class TriviaQuestion:
    question: str
    correct_answer: str
    incorrect_answers: list[str]
    category: str = ""
    difficulty: str = ""

    @property
    def answers(self) -> list[str]:
        return [self.correct_answer, *self.incorrect_answers]


@dataclass
class Reminder:
    id: int
    from_user_id: int
    for_user_id: int
    raise_timestamp: datetime
    message: str
