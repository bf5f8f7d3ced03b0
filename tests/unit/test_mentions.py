"""Tests for mention/trigger normalization."""

from __future__ import annotations

from src.chatbridge.core.channel.mentions import (
    build_trigger_pattern,
    format_mention,
    normalize_mentions,
)
from src.chatbridge.core.channel.models import Mention, MentionUser

BOT_ID = "ou_BOT_123"
NAME = "Jonesy"
TRIGGER = build_trigger_pattern(NAME)


def _normalize(text, mentions, **kwargs):
    kwargs.setdefault("bot_id", BOT_ID)
    return normalize_mentions(
        text,
        mentions,
        assistant_name=NAME,
        trigger_pattern=TRIGGER,
        **kwargs,
    )


class TestTriggerPattern:
    def test_matches_at_start_case_insensitive(self):
        assert TRIGGER.match("@jonesy hi")
        assert TRIGGER.match("@Jonesy")

    def test_requires_word_boundary(self):
        assert not TRIGGER.match("@Jonesyish hi")

    def test_not_anywhere(self):
        assert not TRIGGER.match("hi @Jonesy")

    def test_name_is_escaped(self):
        pattern = build_trigger_pattern("A.I")
        assert pattern.match("@A.I hello")
        assert not pattern.match("@AxI hello")


class TestNormalizeMentions:
    def test_bot_mention_mid_text_prepends_trigger(self):
        out = _normalize("Hey @_user_1 what do you think?", [Mention("@_user_1", BOT_ID, NAME)])
        assert out == "@Jonesy Hey @Jonesy what do you think?"

    def test_no_duplicate_trigger(self):
        out = _normalize("@_user_1 hello", [Mention("@_user_1", BOT_ID, NAME)])
        assert out == "@Jonesy hello"

    def test_other_users_untouched(self):
        text = "@_user_1 can you check?"
        assert _normalize(text, [Mention("@_user_1", "ou_OTHER", "Alice")]) == text

    def test_self_messages_untouched(self):
        text = "@_user_1 note to self"
        assert _normalize(text, [Mention("@_user_1", BOT_ID, NAME)], is_from_me=True) == text

    def test_unknown_bot_id_untouched(self):
        text = "@_user_1 hi"
        assert _normalize(text, [Mention("@_user_1", BOT_ID, NAME)], bot_id=None) == text

    def test_only_bot_key_replaced_among_several(self):
        out = _normalize(
            "@_user_2 and @_user_1 please",
            [Mention("@_user_2", "ou_OTHER", "Alice"), Mention("@_user_1", BOT_ID, NAME)],
        )
        assert out == "@Jonesy @_user_2 and @Jonesy please"

    def test_no_mentions(self):
        assert _normalize("plain text", []) == "plain text"


class TestFormatMention:
    def test_at_markup(self):
        assert format_mention(MentionUser(id="ou_USER_456", name="Alice")) == (
            '<at user_id="ou_USER_456">Alice</at>'
        )
