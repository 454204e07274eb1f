"""Configuration system for channel-bot.

All Pydantic models are defined here with sensible defaults. Credentials are
normally supplied through ${VAR} references expanded from the environment.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


# ═══════════════════════════════════════════════════════════════
#  Connection
# ═══════════════════════════════════════════════════════════════

class TwitchConfig(BaseModel):
    """Application credentials and the bot account's tokens."""
    client_id: str = ""
    client_secret: str = ""
    bot_id: str = ""
    owner_id: str = ""
    access_token: str = ""
    refresh_token: str = ""


class DatabaseConfig(BaseModel):
    path: str = "channel_bot.db"


class ApiKeysConfig(BaseModel):
    deepl: str = ""


# ═══════════════════════════════════════════════════════════════
#  Runtime tuning
# ═══════════════════════════════════════════════════════════════

class WorkersConfig(BaseModel):
    offline_poll_seconds: int = Field(default=60, ge=1)
    offline_credit_seconds: int = Field(default=60, ge=1, description="Seconds credited per poll")
    identity_cache_clear_seconds: int = Field(default=900, ge=1)
    emote_refresh_seconds: int = Field(default=3600, ge=1)


class DispatchConfig(BaseModel):
    max_depth: int = Field(default=10, ge=1)
    max_message_length: int = Field(default=500, ge=1)
    demultiplex_max: int = Field(default=50, ge=1)
    max_executions: int = Field(default=200, ge=1)


# ═══════════════════════════════════════════════════════════════
#  Root config
# ═══════════════════════════════════════════════════════════════

class BotConfig(BaseModel):
    """Root configuration."""

    twitch: TwitchConfig = Field(default_factory=TwitchConfig)
    channels: list[str] = Field(default_factory=list)
    disregarded_users: list[str] = Field(default_factory=list)
    prefix: str = "$"
    index_markov: bool = True
    track_offliners: bool = True

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    workers: WorkersConfig = Field(default_factory=WorkersConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    api_keys: ApiKeysConfig = Field(default_factory=ApiKeysConfig)

    @field_validator("channels", "disregarded_users")
    @classmethod
    def _lowercase_names(cls, v: list[str]) -> list[str]:
        return [name.strip().lower() for name in v if name.strip()]

    @field_validator("prefix")
    @classmethod
    def _single_char_prefix(cls, v: str) -> str:
        if len(v) != 1 or v.isspace():
            raise ValueError("prefix must be exactly one non-whitespace character")
        return v

    def is_disregarded(self, name: str) -> bool:
        return name.lower() in self.disregarded_users


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def load_config(config_path: str) -> BotConfig:
    """Load and validate YAML config file into BotConfig."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level.")

    raw = _expand_env_vars(raw)
    return BotConfig(**raw)
