"""Outbound rendering: markdown to rich blocks, length-bounded splitting."""

from .markdown import Block, Span, parse_line, render_markdown, to_lark_post, to_telegram_entities
from .splitter import split_points, split_text

__all__ = [
    "Block",
    "Span",
    "parse_line",
    "render_markdown",
    "split_points",
    "split_text",
    "to_lark_post",
    "to_telegram_entities",
]
