"""channel-bot — Twitch chat bot with composable commands and per-channel state."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("channel-bot")
except PackageNotFoundError:
    __version__ = "0.0.0"
