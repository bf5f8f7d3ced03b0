"""Tests for markdown rendering and the Lark / Telegram serializers."""

from __future__ import annotations

from src.chatbridge.core.render.markdown import (
    Span,
    parse_line,
    render_markdown,
    to_lark_post,
    to_telegram_entities,
)


def _lark(text: str):
    return to_lark_post(render_markdown(text))["zh_cn"]["content"]


# ===========================================================================
# Lark post content
# ===========================================================================

class TestLarkPost:
    def test_plain_text_structure(self):
        assert to_lark_post(render_markdown("Hello world")) == {
            "zh_cn": {"content": [[{"tag": "text", "text": "Hello world"}]]},
            "en_us": {"content": [[{"tag": "text", "text": "Hello world"}]]},
        }

    def test_bold(self):
        assert _lark("**bold text**") == [[{"tag": "text", "text": "bold text", "style": ["bold"]}]]

    def test_italic(self):
        assert _lark("*italic text*") == [[{"tag": "text", "text": "italic text", "style": ["italic"]}]]

    def test_inline_code(self):
        assert _lark("`code block`") == [[{"tag": "text", "text": "code block", "style": ["code"]}]]

    def test_link(self):
        assert _lark("[click here](https://example.com)") == [
            [{"tag": "a", "text": "click here", "href": "https://example.com"}],
        ]

    def test_mixed_inline(self):
        assert _lark("Normal **bold** and `code`") == [[
            {"tag": "text", "text": "Normal "},
            {"tag": "text", "text": "bold", "style": ["bold"]},
            {"tag": "text", "text": " and "},
            {"tag": "text", "text": "code", "style": ["code"]},
        ]]

    def test_multiple_lines(self):
        assert _lark("Line 1\nLine 2\nLine 3") == [
            [{"tag": "text", "text": "Line 1"}],
            [{"tag": "text", "text": "Line 2"}],
            [{"tag": "text", "text": "Line 3"}],
        ]

    def test_empty_line_is_paragraph_break(self):
        assert _lark("Para 1\n\nPara 2") == [
            [{"tag": "text", "text": "Para 1"}],
            [{"tag": "text", "text": ""}],
            [{"tag": "text", "text": "Para 2"}],
        ]

    def test_at_tag(self):
        assert _lark('<at user_id="ou_123">Alice</at> hello')[0] == [
            {"tag": "at", "user_id": "ou_123", "user_name": "Alice"},
            {"tag": "text", "text": " hello"},
        ]

    def test_heading_becomes_bold(self):
        assert _lark("## Section Title") == [
            [{"tag": "text", "text": "Section Title", "style": ["bold"]}],
        ]

    def test_heading_keeps_inline_styles(self):
        assert _lark("# Use `x`") == [[
            {"tag": "text", "text": "Use ", "style": ["bold"]},
            {"tag": "text", "text": "x", "style": ["code", "bold"]},
        ]]

    def test_fenced_code_is_raw(self):
        assert _lark('```python\nprint("hello")\nx = 1\n```') == [
            [{"tag": "text", "text": "```python"}],
            [{"tag": "text", "text": 'print("hello")'}],
            [{"tag": "text", "text": "x = 1"}],
            [{"tag": "text", "text": "```"}],
        ]

    def test_markup_inside_fence_is_literal(self):
        assert _lark("```\n**not bold**\n```")[1] == [{"tag": "text", "text": "**not bold**"}]


# ===========================================================================
# parse_line edge cases
# ===========================================================================

class TestParseLine:
    def test_unmatched_star_is_literal(self):
        assert "".join(s.text for s in parse_line("2 * 3 = 6")) == "2 * 3 = 6"

    def test_unmatched_bracket_is_literal(self):
        spans = parse_line("[not a link")
        assert "".join(s.text for s in spans) == "[not a link"
        assert all(s.tag == "text" for s in spans)

    def test_lone_angle_bracket_is_literal(self):
        assert "".join(s.text for s in parse_line("a < b")) == "a < b"

    def test_empty_line(self):
        assert parse_line("") == []


# ===========================================================================
# Telegram entities
# ===========================================================================

class TestTelegramEntities:
    def test_plain(self):
        assert to_telegram_entities(render_markdown("hi there")) == ("hi there", [])

    def test_bold_offsets(self):
        text, entities = to_telegram_entities(render_markdown("a **b** c"))
        assert text == "a b c"
        assert entities == [{"type": "bold", "offset": 2, "length": 1}]

    def test_link_becomes_text_link(self):
        text, entities = to_telegram_entities(render_markdown("see [docs](https://x.io)"))
        assert text == "see docs"
        assert entities == [{"type": "text_link", "offset": 4, "length": 4, "url": "https://x.io"}]

    def test_lines_joined_with_newline(self):
        text, entities = to_telegram_entities(render_markdown("one\n\n*two*"))
        assert text == "one\n\ntwo"
        assert entities == [{"type": "italic", "offset": 5, "length": 3}]

    def test_offsets_count_utf16_units(self):
        # the emoji is two UTF-16 code units
        text, entities = to_telegram_entities(render_markdown("\U0001F600 **x**"))
        assert text == "\U0001F600 x"
        assert entities == [{"type": "bold", "offset": 3, "length": 1}]

    def test_numeric_mention_becomes_text_mention(self):
        text, entities = to_telegram_entities([[Span(text="Bob", tag="at", user_id="42")]])
        assert text == "Bob"
        assert entities == [{"type": "text_mention", "offset": 0, "length": 3, "user": {"id": 42}}]

    def test_non_numeric_mention_is_plain(self):
        text, entities = to_telegram_entities(render_markdown('<at user_id="ou_1">Al</at>'))
        assert text == "Al"
        assert entities == []
