"""Exception hierarchy for command handling.

Handlers raise these; the dispatcher turns them into "❌ ..." chat replies.
Anything that is not a BotError is treated as an unexpected failure.
"""

from __future__ import annotations


class BotError(Exception):
    """Base class for failures with a user-presentable message."""

    default_message = "something went wrong"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotFoundError(BotError):
    """Lookup miss: identity, alias, custom command, explanation code."""

    default_message = "not found"


class OutOfBoundsError(BotError):
    """A malformed invocation, e.g. a number outside its permitted range."""

    default_message = "argument out of bounds"


class MissingArgumentError(BotError):
    default_message = "missing argument"


class InsufficientPrivilegeError(BotError):
    default_message = "you need to be mod, vip or broadcaster to do that"


class CollaboratorError(BotError):
    """An external API failed or returned nothing usable."""

    default_message = "external service unavailable"
