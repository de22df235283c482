"""SyncEngine: keeps the index consistent with the note files on disk.

Every public operation stages its mutations on the store and finishes with
exactly one :meth:`~zest.store.IndexStore.commit`, so an interrupted or
failed run leaves the committed index untouched.  Running an operation
twice without filesystem changes stages nothing the second time.
"""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from zest.errors import ConfigurationError, CorruptionError, ParseError, SourceError, StoreError
from zest.parser import parse_note
from zest.resolver import ReferenceResolver
from zest.search import NoteSearch
from zest.store import Record

if TYPE_CHECKING:
    from zest.config import Config
    from zest.note import Note
    from zest.store import IndexStore

logger = logging.getLogger(__name__)

_HIDDEN_PREFIX = "."
_NOTE_NAME_FORMAT = "%Y_%m_%d_%H_%M_%S.md"


class SyncEngine:
    """Discovers, refreshes and removes notes under the configured roots."""

    def __init__(
        self,
        store: "IndexStore",
        config: "Config",
        resolver: ReferenceResolver | None = None,
        search: NoteSearch | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.resolver = resolver or ReferenceResolver(store)
        self.search = search or NoteSearch(store)

    @contextlib.contextmanager
    def _batch(self) -> Iterator[None]:
        """Discard the staged work when a store error aborts the batch."""
        try:
            yield
        except StoreError:
            self.store.rollback()
            raise

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage(self, note: "Note") -> None:
        """Resolve *note*'s references and stage it with its current mtime."""
        refs = self.resolver.resolve(note)
        try:
            last_modified = os.stat(note.path).st_mtime
        except OSError as exc:
            raise SourceError(f"{note.path}: {exc.strerror or exc}") from exc
        self.store.upsert(Record.from_note(note, refs, last_modified))

    def add_many(self, paths: Iterable[Path | str]) -> int:
        """Parse and index every file of *paths*; unparsable files are skipped."""
        with self._batch():
            for path in paths:
                try:
                    self.stage(parse_note(path))
                except ParseError as exc:
                    logger.error("%s could not be added: %s", path, exc)
        return self.store.commit()

    def add(self, path: Path | str) -> int:
        return self.add_many([path])

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def iter_files(self) -> Iterator[Path]:
        """Canonical paths of every non-hidden file under the configured roots."""
        for root in self.config.roots:
            logger.debug("Looking into %s", root)
            if not root.is_dir():
                logger.warning("%s is not a directory.", root)
                continue
            for dirpath, dirnames, filenames in os.walk(root.resolve()):
                dirnames[:] = sorted(d for d in dirnames if not d.startswith(_HIDDEN_PREFIX))
                for name in sorted(filenames):
                    if name.startswith(_HIDDEN_PREFIX):
                        continue
                    path = Path(dirpath, name)
                    if path.is_file():
                        yield path.resolve()

    def _check_new(self) -> None:
        for path in self.iter_files():
            if self.store.exact_lookup("path", str(path)):
                logger.debug("%s is already tracked", path)
                continue
            logger.info("%s is not tracked yet, adding it", path)
            try:
                self.stage(parse_note(path))
            except ParseError as exc:
                logger.warning("Could not parse %s: %s", path, exc)

    def discover_new(self) -> int:
        """Index the files under the roots that are not tracked yet."""
        logger.debug("Discovery start")
        with self._batch():
            self._check_new()
        return self.store.commit()

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def _refresh_tracked(self) -> None:
        for path, last_modified in self.store.stamps():
            if path is None:
                raise CorruptionError("missing path field")
            if last_modified is None:
                raise CorruptionError(f"missing last modified date for {path}")

            try:
                current = os.stat(path).st_mtime
            except OSError:
                logger.info("%s is gone, removing it", path)
                self.store.delete(path)
                continue

            if current > last_modified:
                logger.debug("%s has changed: %s > %s", path, current, last_modified)
                try:
                    self.stage(parse_note(path))
                except ParseError as exc:
                    logger.warning("Could not update %s: %s", path, exc)
            else:
                logger.debug("No change detected for %s", path)

    def full_update(self) -> int:
        """Discover new files, then re-index changed ones and drop deleted ones."""
        logger.debug("Update start")
        with self._batch():
            self._check_new()
            self._refresh_tracked()
        return self.store.commit()

    # ------------------------------------------------------------------
    # Create / reindex / remove
    # ------------------------------------------------------------------

    def create(self) -> tuple[Path, int]:
        """Create an empty, timestamp-named note in the first root and index it."""
        if not self.config.paths:
            raise ConfigurationError("The config does not specify paths")
        root = self.config.roots[0]
        path = root.resolve() / datetime.now(UTC).strftime(_NOTE_NAME_FORMAT)
        try:
            path.touch()
        except OSError as exc:
            raise ConfigurationError(f"cannot create a note in {root}: {exc}") from exc

        with self._batch():
            self.stage(parse_note(path))
        return path, self.store.commit()

    def reindex(self) -> int:
        """Rebuild the whole index from the currently searchable notes.

        References are resolved against the index as it was before the
        rebuild, which repairs links that were broken when first indexed.
        """
        notes = self.search.search("*")
        logger.info("Reindexing %d notes", len(notes))
        with self._batch():
            self.store.delete_all()
            for note in notes:
                try:
                    self.stage(note)
                except ParseError as exc:
                    logger.warning("Could not reindex %s: %s", note.path, exc)
        return self.store.commit()

    def remove(self, query: str) -> int:
        """Drop every note matching *query* from the index (files are kept)."""
        return self.store.delete_by_query(query)
