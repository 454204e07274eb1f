"""Tests for channel_bot.chat_client payload conversion."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

from channel_bot.chat_client import to_chat_event
from channel_bot.models import Channel


def make_payload(**overrides) -> MagicMock:
    payload = MagicMock()
    payload.chatter.id = "11"
    payload.chatter.name = "Alice"
    payload.chatter.display_name = "Alice"
    payload.broadcaster.id = "1001"
    payload.broadcaster.name = "TestChannel"
    payload.text = "hi Kappa"
    payload.timestamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
    payload.badges = [MagicMock(set_id="moderator"), MagicMock(set_id="subscriber")]
    text = MagicMock(type="text", text="hi ")
    emote = MagicMock(type="emote", text="Kappa")
    payload.fragments = [text, emote]
    for key, value in overrides.items():
        setattr(payload, key, value)
    return payload


class TestToChatEvent:

    def test_fields(self):
        event = to_chat_event(make_payload())
        assert event.sender.id == 11
        assert event.sender.name == "alice"
        assert event.sender.display_name == "Alice"
        assert event.channel == Channel(id=1001, name="testchannel")
        assert event.text == "hi Kappa"
        assert event.emotes == ["Kappa"]

    def test_badges(self):
        event = to_chat_event(make_payload())
        assert event.sender.badges == frozenset({"moderator", "subscriber"})
        assert event.sender.is_privileged

    def test_no_badges_or_fragments(self):
        event = to_chat_event(make_payload(badges=[], fragments=[]))
        assert not event.sender.is_privileged
        assert event.emotes == []
