"""Twitch Helix API client — thin async HTTP wrapper.

Stateless request/parse/return calls. A missing user or stream is None;
transport and HTTP failures raise CollaboratorError so callers can tell
"no such thing" from "couldn't ask".
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

import aiohttp

from .errors import CollaboratorError
from .utils import parse_timestamp

if TYPE_CHECKING:
    from .config import TwitchConfig

HELIX_URL = "https://api.twitch.tv/helix/"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"


class TwitchApiClient:
    """Async client for the endpoints the bot reads from Helix."""

    def __init__(self, config: TwitchConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("bot.helix")
        self._session: aiohttp.ClientSession | None = None
        self._token = config.access_token

    async def start(self) -> None:
        """Create the HTTP session, minting an app token if no user token is configured."""
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=10.0),
        )
        if not self._token:
            self._token = await self._fetch_app_token()
            self._logger.warning(
                "No user access token configured; using an app token (chatter lists will fail)"
            )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _fetch_app_token(self) -> str:
        try:
            async with self._session.post(
                TOKEN_URL,
                params={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "grant_type": "client_credentials",
                },
            ) as resp:
                resp.raise_for_status()
                data = await resp.json()
                return data["access_token"]
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError) as e:
            raise CollaboratorError("could not authenticate with twitch") from e

    async def _get(self, path: str, params: dict[str, Any] | list[tuple[str, Any]]) -> dict:
        if not self._session:
            raise CollaboratorError("twitch client not started")
        headers = {
            "Client-Id": self._config.client_id,
            "Authorization": f"Bearer {self._token}",
        }
        try:
            async with self._session.get(HELIX_URL + path, params=params, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.error("Helix request %s failed: %s", path, e)
            raise CollaboratorError("twitch api unavailable") from e

    # ══════════════════════════════════════════════════════════
    #  Users
    # ══════════════════════════════════════════════════════════

    async def get_user(self, login: str) -> dict | None:
        data = await self._get("users", {"login": login.lower()})
        users = data.get("data") or []
        return users[0] if users else None

    async def get_user_by_id(self, user_id: int) -> dict | None:
        data = await self._get("users", {"id": str(user_id)})
        users = data.get("data") or []
        return users[0] if users else None

    async def resolve_id(self, login: str) -> int | None:
        user = await self.get_user(login)
        return int(user["id"]) if user else None

    async def resolve_name(self, user_id: int) -> str | None:
        user = await self.get_user_by_id(user_id)
        return user["login"] if user else None

    async def get_account_created(self, login: str) -> datetime | None:
        user = await self.get_user(login)
        return parse_timestamp(user["created_at"].replace("Z", "+00:00")) if user else None

    # ══════════════════════════════════════════════════════════
    #  Streams & chat
    # ══════════════════════════════════════════════════════════

    async def get_stream(self, login: str) -> dict | None:
        """The live stream of ``login``, or None when offline."""
        data = await self._get("streams", {"user_login": login.lower()})
        streams = data.get("data") or []
        return streams[0] if streams else None

    async def is_live(self, login: str) -> bool:
        return await self.get_stream(login) is not None

    async def get_chatters(self, broadcaster_id: int) -> list[str] | None:
        """Logins currently in chat. Requires the bot to be a moderator there."""
        chatters: list[str] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {
                "broadcaster_id": str(broadcaster_id),
                "moderator_id": self._config.bot_id,
                "first": "1000",
            }
            if cursor:
                params["after"] = cursor
            data = await self._get("chat/chatters", params)
            chatters.extend(c["user_login"] for c in data.get("data") or [])
            cursor = (data.get("pagination") or {}).get("cursor")
            if not cursor:
                break
        return chatters or None

    async def get_follow_date(self, broadcaster_id: int, user_id: int) -> datetime | None:
        data = await self._get(
            "channels/followers",
            {"broadcaster_id": str(broadcaster_id), "user_id": str(user_id)},
        )
        follows = data.get("data") or []
        if not follows:
            return None
        return parse_timestamp(follows[0]["followed_at"].replace("Z", "+00:00"))
