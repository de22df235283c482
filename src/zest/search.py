"""NoteSearch: query facade returning fresh notes or bare paths."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import polars as pl

from zest.errors import ParseError
from zest.parser import parse_note

if TYPE_CHECKING:
    from zest.note import Note
    from zest.store import IndexStore

logger = logging.getLogger(__name__)


class NoteSearch:
    """Read-side view over an :class:`~zest.store.IndexStore`."""

    def __init__(self, store: "IndexStore") -> None:
        self.store = store

    def search(self, query: str) -> list["Note"]:
        """Notes matching *query*, each re-parsed from its source file.

        The stored snapshot only decides *which* notes match; the returned
        content is always what is on disk now.  Notes that can no longer be
        parsed are left out.
        """
        notes: list[Note] = []
        for path in self.store.paths(query):
            try:
                notes.append(parse_note(path))
            except ParseError as exc:
                logger.debug("Skipping %s: %s", path, exc)
        return notes

    def list_paths(self, query: str) -> list[str]:
        """Paths of the notes matching *query*, straight from the index."""
        return self.store.paths(query)

    def table(self, query: str = "*") -> pl.DataFrame:
        """Matching notes as a table, sorted by path."""
        return self.store.frame(query).sort("path")

    def backlinks(self, path: str) -> list[str]:
        """Paths of the notes that link to *path*."""
        return sorted(self.store.referrers(path))
