"""The fixed field schema of the index store.

One :class:`Schema` instance (:data:`SCHEMA`) is built at import time and
shared by reference by the store, the query translator and the records.

Records live in a plain ``notes`` table.  Every text field is copied into an
SQLite FTS5 table (``notes_fts``, same ``rowid``); tokenization, phrase and
prefix matching are left to FTS5.  ``path`` and ``tag`` are keyword fields
answered from the ``notes`` table directly.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class FieldKind(enum.Enum):
    TEXT = "text"          # FTS5 column
    KEYWORD = "keyword"    # exact match on a scalar column
    KEYWORDS = "keywords"  # exact match on one element of a JSON list column


@dataclass(frozen=True)
class Field:
    """A queryable field, as named in the query language."""

    name: str
    column: str
    kind: FieldKind


@dataclass(frozen=True)
class Schema:
    table: str
    fts_table: str
    #: ``(column, sql_type)`` pairs of the record table, in table order
    columns: tuple[tuple[str, str], ...]
    #: FTS5 columns, in table order
    fts_columns: tuple[str, ...]
    fields: tuple[Field, ...]
    default_fields: tuple[str, ...]
    tokenizer: str = "unicode61"

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.columns)

    def get(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def create_statements(self) -> tuple[str, ...]:
        cols = ",\n    ".join(f"{name} {sql_type}" for name, sql_type in self.columns)
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table} (\n    {cols}\n)",
            f"""
            CREATE VIRTUAL TABLE IF NOT EXISTS {self.fts_table} USING fts5(
                {", ".join(self.fts_columns)},
                tokenize='{self.tokenizer}'
            )
            """,
        )


SCHEMA = Schema(
    table="notes",
    fts_table="notes_fts",
    columns=(
        ("path", "TEXT UNIQUE"),
        ("title", "TEXT"),
        ("content", "TEXT"),
        ("tags", "TEXT"),
        ("refs", "TEXT"),
        ("langs", "TEXT"),
        ("code", "TEXT"),
        ("last_modified", "REAL"),
    ),
    fts_columns=("title", "content", "file", "ref", "lang", "code"),
    fields=(
        Field("title", "title", FieldKind.TEXT),
        Field("content", "content", FieldKind.TEXT),
        Field("file", "file", FieldKind.TEXT),
        Field("path", "path", FieldKind.KEYWORD),
        Field("tag", "tags", FieldKind.KEYWORDS),
        Field("ref", "ref", FieldKind.TEXT),
        Field("lang", "lang", FieldKind.TEXT),
        Field("code", "code", FieldKind.TEXT),
    ),
    default_fields=("title", "content"),
)
