"""Exception hierarchy shared by every zest component.

File-scoped :class:`ParseError` subclasses are recovered from locally by the
batch operations (the file is logged and skipped).  Everything else under
:class:`StoreError` or :class:`ConfigurationError` aborts the operation in
progress and propagates to the caller.
"""

from __future__ import annotations


class ZestError(Exception):
    """Base class for all zest errors."""


class ConfigurationError(ZestError):
    """The configuration does not allow the requested operation."""


# ---------------------------------------------------------------------------
# Index store
# ---------------------------------------------------------------------------


class StoreError(ZestError):
    """Base class for index store failures."""


class DirectoryError(StoreError):
    """The index directory could not be created or accessed."""


class OpenError(DirectoryError):
    """The index database could not be opened (missing rights, lock held…)."""


class WriteError(StoreError):
    """Staging or committing a mutation failed."""


class QueryError(StoreError):
    """The query text could not be parsed."""


class CorruptionError(StoreError):
    """An index record is missing required fields, or the schema drifted."""


# ---------------------------------------------------------------------------
# Note parsing
# ---------------------------------------------------------------------------


class ParseError(ZestError):
    """A single note file could not be turned into a note document."""


class SourceError(ParseError):
    """The note source is missing, unreadable, or not valid UTF-8."""


class MetadataError(ParseError):
    """The front-matter block is not a valid metadata mapping."""

    def __str__(self) -> str:
        return f"Error while parsing metadata: {super().__str__()}"
