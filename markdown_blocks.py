"""Tiny markdown subset used to display Gemini's answers.

Supports ``#``/``##``/``###`` headings, ``**bold**``, ``* `` bullet lines and
plain paragraphs. Anything else is shown as a paragraph.
"""
import html
import re
from dataclasses import dataclass
from functools import reduce
from typing import Tuple, Union

BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
HEADING_PREFIXES = (("### ", 3), ("## ", 2), ("# ", 1))
BULLET_PREFIX = "* "


@dataclass(frozen=True)
class Span:
    text: str
    bold: bool = False


Spans = Tuple[Span, ...]


@dataclass(frozen=True)
class Heading:
    level: int
    spans: Spans


@dataclass(frozen=True)
class Paragraph:
    spans: Spans


@dataclass(frozen=True)
class BulletList:
    items: Tuple[Spans, ...]


@dataclass(frozen=True)
class _Break:
    """Blank line marker; ends a list and is dropped from the output."""


Block = Union[Heading, Paragraph, BulletList]


def parse_inline(text: str) -> Spans:
    spans = []
    pos = 0
    for match in BOLD_RE.finditer(text):
        if match.start() > pos:
            spans.append(Span(text[pos:match.start()]))
        spans.append(Span(match.group(1), bold=True))
        pos = match.end()
    if pos < len(text):
        spans.append(Span(text[pos:]))
    return tuple(spans)


def _classify(line: str):
    for prefix, level in HEADING_PREFIXES:
        if line.startswith(prefix):
            return Heading(level, parse_inline(line[len(prefix):]))
    if line.startswith(BULLET_PREFIX):
        return parse_inline(line[len(BULLET_PREFIX):].lstrip())
    if not line.strip():
        return _Break()
    return Paragraph(parse_inline(line))


def _fold(acc: tuple, line: str) -> tuple:
    blocks, bullets = acc
    item = _classify(line.rstrip("\r"))
    if isinstance(item, tuple):  # bullet spans
        bullets.append(item)
        return acc
    if bullets:
        blocks.append(BulletList(tuple(bullets)))
    blocks.append(item)
    return blocks, []


def parse_blocks(text: str) -> Tuple[Block, ...]:
    """Turn markdown-ish text into an ordered tuple of typed blocks.

    Consecutive bullet lines share one BulletList; a blank line or any other
    block ends the list.
    """
    folded, bullets = reduce(_fold, text.split("\n"), ([], []))
    if bullets:
        folded.append(BulletList(tuple(bullets)))
    return tuple(b for b in folded if not isinstance(b, _Break))


def _spans_html(spans: Spans) -> str:
    return "".join(
        f"<strong>{html.escape(s.text)}</strong>" if s.bold else html.escape(s.text) for s in spans
    )


def render_html(blocks: Tuple[Block, ...]) -> str:
    out = []
    for block in blocks:
        if isinstance(block, Heading):
            out.append(f"<h{block.level}>{_spans_html(block.spans)}</h{block.level}>")
        elif isinstance(block, BulletList):
            items = "".join(f"<li>{_spans_html(item)}</li>" for item in block.items)
            out.append(f"<ul>{items}</ul>")
        else:
            out.append(f"<p>{_spans_html(block.spans)}</p>")
    return "\n".join(out)
