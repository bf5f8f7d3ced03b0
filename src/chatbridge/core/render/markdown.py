"""Markdown to rich-content blocks.

Only a fixed subset is understood:

- ``<at user_id="...">name</at>`` -> mention span
- ``[text](url)``                 -> link span
- ```` `code` ````                -> text span, style ``code``
- ``**bold**`` / ``*italic*``     -> text span, style ``bold`` / ``italic``
- ``# Heading`` .. ``###### H``   -> inline-parsed line, every text span bold
- fenced code blocks              -> raw lines, fences included
- blank line                      -> empty paragraph block

Anything else is literal text. The result is a list of blocks (one per
source line), each a list of :class:`Span`; platform serializers live at the
bottom of this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

TAG_TEXT = "text"
TAG_LINK = "a"
TAG_MENTION = "at"

_AT_RE = re.compile(r'<at user_id="([^"]+)">([^<]*)</at>')
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_CODE_RE = re.compile(r"`([^`]+)`")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*([^*]+)\*")
_PLAIN_RE = re.compile(r"[^*`\[<]+")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)")


@dataclass(frozen=True)
class Span:
    """One inline run of a rendered line."""

    text: str = ""
    tag: str = TAG_TEXT
    style: Tuple[str, ...] = field(default_factory=tuple)
    href: Optional[str] = None
    user_id: Optional[str] = None


Block = List[Span]


def parse_line(line: str) -> Block:
    """Parse one line into spans, leftmost-first, greedy."""
    spans: Block = []
    pos = 0
    end = len(line)

    while pos < end:
        m = _AT_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(2), tag=TAG_MENTION, user_id=m.group(1)))
            pos = m.end()
            continue

        m = _LINK_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(1), tag=TAG_LINK, href=m.group(2)))
            pos = m.end()
            continue

        m = _CODE_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(1), style=("code",)))
            pos = m.end()
            continue

        m = _BOLD_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(1), style=("bold",)))
            pos = m.end()
            continue

        m = _ITALIC_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(1), style=("italic",)))
            pos = m.end()
            continue

        m = _PLAIN_RE.match(line, pos)
        if m:
            spans.append(Span(text=m.group(0)))
            pos = m.end()
            continue

        # A special character that opened nothing.
        spans.append(Span(text=line[pos]))
        pos += 1

    return spans


def render_markdown(text: str) -> List[Block]:
    """Convert markdown text to an ordered list of blocks."""
    blocks: List[Block] = []
    in_code_block = False

    for line in text.split("\n"):
        if line.lstrip().startswith("```"):
            in_code_block = not in_code_block
            blocks.append([Span(text=line)])
            continue

        if in_code_block:
            blocks.append([Span(text=line)])
            continue

        heading = _HEADING_RE.match(line)
        if heading:
            blocks.append([
                replace(span, style=span.style + ("bold",)) if span.tag == TAG_TEXT else span
                for span in parse_line(heading.group(2))
            ])
            continue

        if not line:
            blocks.append([Span(text="")])
            continue

        spans = parse_line(line)
        if spans:
            blocks.append(spans)

    return blocks


# ---------------------------------------------------------------------------
# Platform serializers
# ---------------------------------------------------------------------------

def _lark_element(span: Span) -> Dict[str, Any]:
    if span.tag == TAG_MENTION:
        return {"tag": "at", "user_id": span.user_id, "user_name": span.text}
    if span.tag == TAG_LINK:
        return {"tag": "a", "text": span.text, "href": span.href}
    element: Dict[str, Any] = {"tag": "text", "text": span.text}
    if span.style:
        element["style"] = list(span.style)
    return element


def to_lark_post(blocks: List[Block]) -> Dict[str, Any]:
    """Serialize blocks as Lark ``post`` content (rich text, not a card)."""
    content = [[_lark_element(span) for span in block] for block in blocks]
    return {"zh_cn": {"content": content}, "en_us": {"content": content}}


def _utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def to_telegram_entities(blocks: List[Block]) -> Tuple[str, List[Dict[str, Any]]]:
    """Serialize blocks as Telegram ``text`` + ``entities``.

    Entity offsets and lengths are counted in UTF-16 code units.
    """
    parts: List[str] = []
    entities: List[Dict[str, Any]] = []
    offset = 0

    for i, block in enumerate(blocks):
        if i > 0:
            parts.append("\n")
            offset += 1
        for span in block:
            if not span.text:
                continue
            length = _utf16_len(span.text)
            if span.tag == TAG_LINK:
                entities.append({"type": "text_link", "offset": offset, "length": length, "url": span.href})
            elif span.tag == TAG_MENTION:
                if span.user_id and span.user_id.isdigit():
                    entities.append({
                        "type": "text_mention",
                        "offset": offset,
                        "length": length,
                        "user": {"id": int(span.user_id)},
                    })
            for style in span.style:
                entities.append({"type": style, "offset": offset, "length": length})
            parts.append(span.text)
            offset += length

    return "".join(parts), entities
