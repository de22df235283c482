"""Core Note dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class CodeBlock:
    """A fenced or indented code block found in a note body."""

    language: str | None
    code: str


@dataclass
class Note:
    """A single parsed markdown note."""

    path: Path
    title: str
    content: str
    tags: list[str] = field(default_factory=list)
    #: Raw link destinations, in document order, duplicates kept
    refs: list[str] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)
    frontmatter: dict[str, Any] = field(default_factory=dict)
