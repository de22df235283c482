"""Markdown note parser: YAML front matter, title, content, links and code.

The body is tokenized with :mod:`markdown_it` and translated into a small
tagged variant type (:data:`Event`).  :class:`_Accumulator` folds those
events into a :class:`~zest.note.Note`, tracking explicitly whether it is
currently inside the title heading or in the body.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, assert_never

import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token

from zest.errors import MetadataError, SourceError
from zest.note import CodeBlock, Note

_FRONTMATTER_DELIMITER = "---"

_MD = MarkdownIt("commonmark")
# Keep link destinations exactly as written (no percent-encoding)
_MD.normalizeLink = lambda url: url


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Break:
    """Soft break, hard break, or end of a paragraph.

    Paragraph ends count as breaks too, so consecutive paragraphs stay
    separated by a newline in the note content.  This is a choice of this
    parser; plain CommonMark text extraction would join them.
    """


@dataclass(frozen=True)
class Link:
    destination: str


@dataclass(frozen=True)
class HeadingStart:
    level: int


@dataclass(frozen=True)
class HeadingEnd:
    level: int


@dataclass(frozen=True)
class Code:
    language: str | None
    code: str


Event = Text | Break | Link | HeadingStart | HeadingEnd | Code


def _inline_events(children: Iterable[Token]) -> Iterator[Event]:
    for child in children:
        if child.type == "text":
            yield Text(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            yield Break()
        elif child.type == "link_open":
            yield Link(str(child.attrGet("href") or ""))
        elif child.type == "image":
            # alt text is visible text
            yield Text(child.content)


def iter_events(body: str) -> Iterator[Event]:
    """Yield the :data:`Event` stream of a markdown *body*."""
    for token in _MD.parse(body):
        if token.type == "heading_open":
            yield HeadingStart(int(token.tag[1:]))
        elif token.type == "heading_close":
            yield HeadingEnd(int(token.tag[1:]))
        elif token.type == "paragraph_close":
            yield Break()
        elif token.type == "inline":
            yield from _inline_events(token.children or [])
        elif token.type == "fence":
            language = token.info.split()[0] if token.info.strip() else None
            yield Code(language, token.content)
        elif token.type == "code_block":
            yield Code(None, token.content)


# ---------------------------------------------------------------------------
# Event folding
# ---------------------------------------------------------------------------


class Section(enum.Enum):
    TITLE = "title"
    BODY = "body"


@dataclass
class _Accumulator:
    section: Section = Section.BODY
    title_seen: bool = False
    title: list[str] = field(default_factory=list)
    content: list[str] = field(default_factory=list)
    refs: list[str] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)

    def feed(self, event: Event) -> None:
        match event:
            case HeadingStart(level=1) if not self.title_seen:
                self.section = Section.TITLE
                self.title_seen = True
            case HeadingEnd(level=1) if self.section is Section.TITLE:
                self.section = Section.BODY
            case HeadingStart():
                pass
            case HeadingEnd():
                self.content.append("\n")
            case Text(text) if self.section is Section.TITLE:
                self.title.append(text)
            case Text(text):
                self.content.append(text)
            case Link(destination):
                self.refs.append(destination)
            case Break() if self.section is Section.BODY:
                self.content.append("\n")
            case Break():
                pass
            case Code(language, code):
                self.code_blocks.append(CodeBlock(language, code))
            case _:
                assert_never(event)


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------


def split_frontmatter(content: str) -> tuple[str, str]:
    """Split *content* into ``(metadata_text, body_text)``.

    The metadata block starts when the very first line is exactly ``---`` and
    runs up to the next ``---`` line.  An unclosed block swallows the rest of
    the file.
    """
    metadata: list[str] = []
    body: list[str] = []
    in_header = False
    for i, line in enumerate(content.splitlines()):
        if i == 0 and line == _FRONTMATTER_DELIMITER:
            in_header = True
        elif in_header and line == _FRONTMATTER_DELIMITER:
            in_header = False
        elif in_header:
            metadata.append(line)
        else:
            body.append(line)
    return "\n".join(metadata), "\n".join(body)


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML front matter from body text.

    Returns ``(metadata_dict, body)``; ``metadata_dict`` is empty when there
    is no front-matter block.  Raises :class:`MetadataError` when the block is
    not a YAML mapping.
    """
    meta_text, body = split_frontmatter(content)
    if not meta_text.strip():
        return {}, body
    try:
        meta = yaml.safe_load(meta_text)
    except yaml.YAMLError as exc:
        raise MetadataError(str(exc)) from exc
    if meta is None:
        return {}, body
    if not isinstance(meta, dict):
        raise MetadataError(f"expected a mapping, got {type(meta).__name__}")
    return meta, body


def parse_tags(frontmatter: dict[str, Any]) -> list[str]:
    """Return the de-duplicated ``tags`` of a front-matter mapping."""
    raw = frontmatter.get("tags")
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [t.strip() for t in raw.split(",") if t.strip()]
    if not isinstance(raw, list):
        raise MetadataError(f"tags must be a list, got {type(raw).__name__}")
    tags: list[str] = []
    for tag in raw:
        if isinstance(tag, (dict, list)):
            raise MetadataError(f"invalid tag: {tag!r}")
        if tag is not None:
            tags.append(str(tag))
    return list(dict.fromkeys(tags))


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


def parse_text(content: str, path: Path) -> Note:
    """Parse markdown *content* into a :class:`Note` located at *path*."""
    frontmatter, body = parse_frontmatter(content)
    tags = parse_tags(frontmatter)

    acc = _Accumulator()
    for event in iter_events(body):
        acc.feed(event)

    return Note(
        path=path,
        title="".join(acc.title),
        content="".join(acc.content),
        tags=tags,
        refs=acc.refs,
        code_blocks=acc.code_blocks,
        frontmatter=frontmatter,
    )


def parse_note(path: Path | str) -> Note:
    """Read a note file and return a fully-populated :class:`Note`.

    The returned note carries the canonical (resolved) path.
    """
    try:
        source = Path(path).resolve(strict=True)
        raw = source.read_bytes()
    except OSError as exc:
        raise SourceError(f"{path}: {exc.strerror or exc}") from exc
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SourceError(f"{path}: not valid UTF-8 ({exc.reason})") from exc
    return parse_text(content, source)
