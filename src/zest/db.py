"""Database — one zest session: the store plus everything built on it.

Usage::

    config = load_config()
    with Database.open(config) as db:
        db.full_update()
        for note in db.search("tag:work"):
            print(note.path, note.title)
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from zest import graph
from zest.resolver import ReferenceResolver
from zest.search import NoteSearch
from zest.store import IndexStore
from zest.sync import SyncEngine

if TYPE_CHECKING:
    from collections.abc import Iterable

    import polars as pl

    from zest.config import Config
    from zest.note import Note


class Database:
    """Owns the index store for the lifetime of one invocation."""

    def __init__(self, store: IndexStore, config: "Config") -> None:
        self.store = store
        self.config = config
        self.notes = NoteSearch(store)
        self.engine = SyncEngine(store, config, ReferenceResolver(store), self.notes)

    @classmethod
    def open(cls, config: "Config") -> "Database":
        return cls(IndexStore.open(config.index_dir), config)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def add(self, path: Path | str) -> int:
        return self.engine.add(path)

    def add_many(self, paths: "Iterable[Path | str]") -> int:
        return self.engine.add_many(paths)

    def remove(self, query: str) -> int:
        return self.engine.remove(query)

    def discover_new(self) -> int:
        return self.engine.discover_new()

    def full_update(self) -> int:
        return self.engine.full_update()

    def create(self) -> tuple[Path, int]:
        return self.engine.create()

    def reindex(self) -> int:
        return self.engine.reindex()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def search(self, query: str) -> list["Note"]:
        return self.notes.search(query)

    def list_paths(self, query: str) -> list[str]:
        return self.notes.list_paths(query)

    def table(self, query: str = "*") -> "pl.DataFrame":
        return self.notes.table(query)

    def backlinks(self, path: Path | str) -> list[str]:
        return self.notes.backlinks(str(Path(path).resolve()))

    def links(self) -> list[tuple[str, str]]:
        return graph.edges(graph.link_graph(self.store))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
