"""Mention/trigger normalization for inbound text."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern

from .models import Mention, MentionUser


def build_trigger_pattern(assistant_name: str) -> Pattern[str]:
    """``^@<name>\\b``, case-insensitive."""
    return re.compile(rf"^@{re.escape(assistant_name)}\b", re.IGNORECASE)


def format_mention(user: MentionUser) -> str:
    """Native mention markup understood by the renderer."""
    return f'<at user_id="{user.id}">{user.name}</at>'


def normalize_mentions(
    text: str,
    mentions: Iterable[Mention],
    *,
    bot_id: Optional[str],
    assistant_name: str,
    trigger_pattern: Pattern[str],
    is_from_me: bool = False,
) -> str:
    """Rewrite placeholders that mention the bot into ``@<assistant_name>``.

    If anything was rewritten and the result does not already start with the
    trigger, ``@<assistant_name> `` is prepended once. Mentions of anybody
    else are left untouched, and self-authored messages are never modified.
    """
    if is_from_me or not bot_id:
        return text

    content = text
    for mention in mentions:
        if mention.user_id == bot_id and mention.key:
            content = content.replace(mention.key, f"@{assistant_name}", 1)

    if content != text and not trigger_pattern.match(content):
        content = f"@{assistant_name} {content}"
    return content
