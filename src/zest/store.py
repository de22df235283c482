"""IndexStore — persistent, schema'd note index on top of SQLite and FTS5.

The store owns two connections to one SQLite database file in WAL mode:

* the **writer**, whose open transaction collects every staged mutation
  (``upsert``, ``delete``, ``delete_all``) until :meth:`IndexStore.commit`;
* the **reader**, which keeps a read transaction open so it sees a pinned
  snapshot.  It only moves forward on :meth:`IndexStore.reload`, which
  ``commit`` calls once the writer's work is durable.

Staged work is therefore private to the writer until it is committed, and a
commit is all-or-nothing.  Each commit that carries staged work bumps a
persisted sequence number; committing with nothing staged is a no-op that
returns the current number.

Usage::

    with IndexStore.open(index_dir) as store:
        store.upsert(record)
        opstamp = store.commit()
        paths = store.paths("tag:work")
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import polars as pl

from zest.errors import CorruptionError, DirectoryError, OpenError, QueryError, StoreError, WriteError
from zest.query import Query, parse_query
from zest.schema import SCHEMA, Schema

if TYPE_CHECKING:
    from zest.note import Note

logger = logging.getLogger(__name__)

_DB_FILENAME = "index.db"
_COMMITS_TABLE = "commits"
_FRAME_SCHEMA = {
    "path": pl.Utf8,
    "title": pl.Utf8,
    "tags": pl.List(pl.Utf8),
    "last_modified": pl.Float64,
}


def _connect(db_path: Path) -> sqlite3.Connection:
    # isolation_level=None: transactions are opened and closed explicitly
    return sqlite3.connect(db_path, isolation_level=None)


def _loads(value: str | None) -> list[str]:
    return list(json.loads(value)) if value else []


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class Record:
    """On-disk projection of a note, plus its mtime at indexing time."""

    path: str | None
    title: str = ""
    content: str = ""
    tags: list[str] = field(default_factory=list)
    #: Resolved references: paths of the notes this one links to
    refs: list[str] = field(default_factory=list)
    langs: list[str] = field(default_factory=list)
    code: list[str] = field(default_factory=list)
    last_modified: float | None = None

    @classmethod
    def from_note(cls, note: "Note", refs: list[str], last_modified: float | None) -> "Record":
        return cls(
            path=str(note.path),
            title=note.title,
            content=note.content,
            tags=list(note.tags),
            refs=list(refs),
            langs=[b.language for b in note.code_blocks if b.language],
            code=[b.code for b in note.code_blocks],
            last_modified=last_modified,
        )

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> "Record":
        path, title, content, tags, refs, langs, code, last_modified = row
        return cls(
            path=path,
            title=title or "",
            content=content or "",
            tags=_loads(tags),
            refs=_loads(refs),
            langs=_loads(langs),
            code=_loads(code),
            last_modified=last_modified,
        )

    def row(self) -> list[Any]:
        """Record table values, in :data:`~zest.schema.SCHEMA` column order."""
        return [
            self.path,
            self.title,
            self.content,
            json.dumps(self.tags),
            json.dumps(self.refs),
            json.dumps(self.langs),
            json.dumps(self.code),
            self.last_modified,
        ]

    def fts_row(self) -> list[str]:
        """Full-text values, in :data:`~zest.schema.SCHEMA` FTS column order."""
        return [
            self.title,
            self.content,
            self.path or "",
            "\n".join(self.refs),
            "\n".join(self.langs),
            "\n".join(self.code),
        ]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class IndexStore:
    """Single-writer SQLite index with explicit staging and commit."""

    def __init__(
        self,
        writer: sqlite3.Connection,
        reader: sqlite3.Connection,
        schema: Schema = SCHEMA,
    ) -> None:
        self.schema = schema
        self._writer = writer
        self._reader = reader
        self._in_transaction = False
        try:
            self._writer.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
            self._opstamp = self._read_opstamp()
            self._reader.execute("BEGIN")
            self._pin()
        except sqlite3.Error as exc:
            raise OpenError(f"cannot initialise index: {exc}") from exc
        self._record_columns = ", ".join(schema.column_names)
        self._insert_sql = "INSERT INTO {} ({}) VALUES ({})".format(
            schema.table, self._record_columns, ", ".join("?" for _ in schema.columns)
        )
        self._insert_fts_sql = "INSERT INTO {} (rowid, {}) VALUES (?, {})".format(
            schema.fts_table,
            ", ".join(schema.fts_columns),
            ", ".join("?" for _ in schema.fts_columns),
        )

    @classmethod
    def open(cls, index_dir: Path | str, schema: Schema = SCHEMA) -> "IndexStore":
        """Open (or create) the index stored in *index_dir*."""
        index_dir = Path(index_dir)
        logger.debug("Opening index in %s", index_dir)
        try:
            index_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryError(f"cannot create index directory {index_dir}: {exc}") from exc
        db_path = index_dir / _DB_FILENAME
        try:
            writer = _connect(db_path)
        except sqlite3.Error as exc:
            raise OpenError(f"cannot open index in {index_dir}: {exc}") from exc
        try:
            reader = _connect(db_path)
        except sqlite3.Error as exc:
            writer.close()
            raise OpenError(f"cannot open index in {index_dir}: {exc}") from exc
        try:
            return cls(writer, reader, schema)
        except Exception:
            reader.close()
            writer.close()
            raise

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _create_schema(self) -> None:
        found = tuple(
            r[1] for r in self._writer.execute(f"PRAGMA table_info({self.schema.table})")
        )
        if found and found != self.schema.column_names:
            raise CorruptionError(
                f"index schema mismatch: expected {self.schema.column_names}, found {found}"
            )
        for statement in self.schema.create_statements():
            self._writer.execute(statement)
        self._writer.execute(
            f"CREATE TABLE IF NOT EXISTS {_COMMITS_TABLE} (opstamp INTEGER NOT NULL)"
        )

    def _read_opstamp(self) -> int:
        row = self._writer.execute(f"SELECT max(opstamp) FROM {_COMMITS_TABLE}").fetchone()
        if row is None or row[0] is None:
            self._writer.execute(f"INSERT INTO {_COMMITS_TABLE} VALUES (0)")
            return 0
        return int(row[0])

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def _stage(self, sql: str, params: list[Any] | None = None) -> sqlite3.Cursor:
        try:
            if not self._in_transaction:
                self._writer.execute("BEGIN")
                self._in_transaction = True
            return self._writer.execute(sql, params or [])
        except sqlite3.Error as exc:
            raise WriteError(str(exc)) from exc

    def _stage_delete(self, path: str) -> None:
        table, fts = self.schema.table, self.schema.fts_table
        self._stage(
            f"DELETE FROM {fts} WHERE rowid IN (SELECT rowid FROM {table} WHERE path = ?)",
            [path],
        )
        self._stage(f"DELETE FROM {table} WHERE path = ?", [path])

    def upsert(self, record: Record) -> None:
        """Stage the replacement of whatever is stored at ``record.path``."""
        if record.path is None:
            raise WriteError("cannot index a record without a path")
        self._stage_delete(record.path)
        rowid = self._stage(self._insert_sql, record.row()).lastrowid
        self._stage(self._insert_fts_sql, [rowid, *record.fts_row()])
        logger.debug("Staged %s", record.path)

    def delete(self, path: str) -> None:
        self._stage_delete(path)
        logger.debug("Staged removal of %s", path)

    def delete_all(self) -> None:
        self._stage(f"DELETE FROM {self.schema.fts_table}")
        self._stage(f"DELETE FROM {self.schema.table}")

    @property
    def has_staged(self) -> bool:
        return self._in_transaction

    @property
    def opstamp(self) -> int:
        """Sequence number of the last commit."""
        return self._opstamp

    def commit(self) -> int:
        """Make every staged mutation visible at once.

        Returns the new sequence number, or the current one when nothing was
        staged.
        """
        if not self._in_transaction:
            return self._opstamp
        try:
            self._writer.execute(f"UPDATE {_COMMITS_TABLE} SET opstamp = opstamp + 1")
            row = self._writer.execute(f"SELECT opstamp FROM {_COMMITS_TABLE}").fetchone()
            self._writer.execute("COMMIT")
        except sqlite3.Error as exc:
            self.rollback()
            raise WriteError(f"commit failed: {exc}") from exc
        self._in_transaction = False
        self._opstamp = int(row[0]) if row else self._opstamp
        self.reload()
        logger.debug("Committed opstamp %d", self._opstamp)
        return self._opstamp

    def rollback(self) -> None:
        """Discard every staged mutation."""
        if not self._in_transaction:
            return
        self._in_transaction = False
        try:
            self._writer.execute("ROLLBACK")
        except sqlite3.Error as exc:
            raise WriteError(f"rollback failed: {exc}") from exc
        logger.debug("Rolled back staged changes")

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    def _pin(self) -> None:
        self._reader.execute(f"SELECT count(*) FROM {self.schema.table}").fetchone()

    def reload(self) -> None:
        """Move the reader's snapshot to the last committed state."""
        try:
            self._reader.execute("COMMIT")
            self._reader.execute("BEGIN")
            self._pin()
        except sqlite3.Error as exc:
            raise StoreError(f"cannot reload reader: {exc}") from exc

    def _execute(self, sql: str, params: list[Any]) -> list[tuple[Any, ...]]:
        try:
            return self._reader.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            # malformed MATCH expressions are only detected by FTS5
            if "fts5" in str(exc) or "no such column" in str(exc):
                raise QueryError(f"invalid query: {exc}") from exc
            raise StoreError(f"query failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreError(f"query failed: {exc}") from exc

    def _fetchall(self, columns: str, query: Query) -> list[tuple[Any, ...]]:
        where, params = query.to_sql(self.schema)
        return self._execute(f"SELECT {columns} FROM {self.schema.table} WHERE {where}", params)

    @staticmethod
    def _paths(rows: list[tuple[Any, ...]]) -> list[str]:
        paths: list[str] = []
        for (path,) in rows:
            if path is None:
                raise CorruptionError("missing path field")
            paths.append(path)
        return paths

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, text: str) -> list[Record]:
        """Return the committed records matching query *text*."""
        rows = self._fetchall(self._record_columns, parse_query(text, self.schema))
        return [Record.from_row(r) for r in rows]

    def paths(self, text: str) -> list[str]:
        """Return the paths of the committed records matching *text*."""
        return self._paths(self._fetchall("path", parse_query(text, self.schema)))

    def frame(self, text: str) -> pl.DataFrame:
        """Matching records as a Polars DataFrame (``path, title, tags, last_modified``)."""
        rows = self._fetchall("path, title, tags, last_modified", parse_query(text, self.schema))
        return pl.DataFrame(
            [(path, title, _loads(tags), mtime) for path, title, tags, mtime in rows],
            schema=_FRAME_SCHEMA,
            orient="row",
        )

    def find(self, field: str, value: str) -> list[str]:
        """Paths of the records whose *field* matches *value* as a single term."""
        return self._paths(self._fetchall("path", Query.term(field, value, self.schema)))

    def exact_lookup(self, field: str, value: str) -> int:
        """Number of committed records whose *field* matches *value*."""
        [(count,)] = self._fetchall("count(*)", Query.term(field, value, self.schema))
        return int(count)

    def stamps(self) -> list[tuple[str | None, float | None]]:
        """``(path, last_modified)`` of every committed record, unchecked."""
        return self._execute(f"SELECT path, last_modified FROM {self.schema.table}", [])

    def referrers(self, path: str) -> list[str]:
        """Paths of the records holding a resolved reference to *path*."""
        return self._paths(
            self._execute(
                f"SELECT path FROM {self.schema.table} "
                "WHERE EXISTS (SELECT 1 FROM json_each(refs) WHERE value = ?)",
                [path],
            )
        )

    def delete_by_query(self, text: str) -> int:
        """Delete every record matching *text* and commit."""
        for (path,) in self._fetchall("path", parse_query(text, self.schema)):
            if path is None:
                logger.debug("Skipping a matching record without path")
                continue
            self.delete(path)
        return self.commit()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._in_transaction:
            logger.warning("Discarding uncommitted index changes")
            self.rollback()
        self._reader.close()
        self._writer.close()

    def __enter__(self) -> "IndexStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
