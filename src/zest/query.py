"""Free-text queries, routed to keyword filters and an SQLite FTS5 ``MATCH``.

Matching is done by FTS5.  This module only decides where each word goes:

    *               matches every document
    path:value      exact canonical path
    tag:value       exact tag
    field:value     one FTS5 column (title, content, file, ref, lang, code)
    term            the default columns (title, content)

Words are quoted before being handed to FTS5 (``"double quotes"`` keep a
phrase together, a trailing ``*`` stays a prefix search) and OR-ed together.
A query that already uses FTS5 operators (``AND``, ``OR``, ``NOT``,
``NEAR``, parentheses) is passed to FTS5 as written.  ``path:`` and ``tag:``
words always narrow the result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from zest.errors import QueryError
from zest.schema import SCHEMA, FieldKind, Schema

MATCH_ALL = "*"

_WORD_RE = re.compile(r'(?:[^\s"]+|"[^"]*"?)+')
_FIELD_RE = re.compile(r"^(\w+):(.*)$", re.DOTALL)
_FTS_OPERATORS = frozenset({"AND", "OR", "NOT", "NEAR"})


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def fts_string(value: str) -> str:
    """*value* as an FTS5 string: FTS5 tokenizes it into a phrase."""
    if len(value) > 1 and value.endswith("*"):
        return fts_string(value[:-1]) + "*"
    return '"' + value.replace('"', '""') + '"'


@dataclass(frozen=True)
class Query:
    #: ``(field, value)`` keyword filters, all of which must hold
    filters: tuple[tuple[str, str], ...] = ()
    #: FTS5 expression, or ``None`` to match every document
    match: str | None = None

    @classmethod
    def term(cls, field: str, value: str, schema: Schema = SCHEMA) -> "Query":
        """A single-term query on *field*, without going through the parser."""
        f = schema.get(field)
        if f is None:
            raise QueryError(f"unknown field {field!r}")
        if f.kind is FieldKind.TEXT:
            return cls(match=f"{f.column} : {fts_string(value)}")
        return cls(filters=((field, value),))

    def to_sql(self, schema: Schema = SCHEMA) -> tuple[str, list[Any]]:
        """Return ``(where_sql, params)`` over the record table."""
        parts: list[str] = []
        params: list[Any] = []
        for name, value in self.filters:
            f = schema.get(name)
            if f is None:
                raise QueryError(f"unknown field {name!r}")
            if f.kind is FieldKind.KEYWORDS:
                parts.append(
                    f"EXISTS (SELECT 1 FROM json_each({schema.table}.{f.column}) WHERE value = ?)"
                )
            else:
                parts.append(f"{schema.table}.{f.column} = ?")
            params.append(value)
        if self.match is not None:
            parts.append(
                f"{schema.table}.rowid IN "
                f"(SELECT rowid FROM {schema.fts_table} WHERE {schema.fts_table} MATCH ?)"
            )
            params.append(self.match)
        return " AND ".join(parts) or "1", params


def _fts_word(word: str, schema: Schema) -> str:
    m = _FIELD_RE.match(word)
    if m is None:
        columns = " ".join(schema.get(n).column for n in schema.default_fields)
        return f"{{{columns}}} : {fts_string(_unquote(word))}"
    f = schema.get(m[1])
    if f is None:
        raise QueryError(f"unknown field {m[1]!r}")
    value = _unquote(m[2])
    if not value:
        raise QueryError(f"missing value for field {m[1]!r}")
    return f"{f.column} : {fts_string(value)}"


def _fts_expression(words: list[str], schema: Schema) -> str:
    if any(w in _FTS_OPERATORS or "(" in w or ")" in w for w in words):
        return " ".join(words)
    return " OR ".join(_fts_word(w, schema) for w in words)


def parse_query(text: str, schema: Schema = SCHEMA) -> Query:
    """Parse free query *text*; raises :class:`QueryError` when malformed.

    Errors FTS5 finds in the expression surface when the query runs.
    """
    if text.count('"') % 2:
        raise QueryError(f"unbalanced quotes in {text!r}")
    words = _WORD_RE.findall(text)
    if not words:
        raise QueryError("empty query")

    filters: list[tuple[str, str]] = []
    rest: list[str] = []
    match_all = False
    for word in words:
        if word == MATCH_ALL:
            match_all = True
            continue
        m = _FIELD_RE.match(word)
        f = schema.get(m[1]) if m else None
        if f is not None and f.kind is not FieldKind.TEXT:
            value = _unquote(m[2])
            if not value:
                raise QueryError(f"missing value for field {m[1]!r}")
            filters.append((f.name, value))
            continue
        rest.append(word)

    if match_all or not rest:
        return Query(tuple(filters))
    return Query(tuple(filters), _fts_expression(rest, schema))
