"""zest — incremental search index over a personal collection of markdown notes."""

from zest.config import Config, load_config
from zest.db import Database
from zest.errors import (
    ConfigurationError,
    CorruptionError,
    MetadataError,
    ParseError,
    QueryError,
    SourceError,
    StoreError,
    ZestError,
)
from zest.note import CodeBlock, Note
from zest.parser import parse_note, parse_text
from zest.search import NoteSearch
from zest.store import IndexStore, Record
from zest.sync import SyncEngine

__all__ = [
    "CodeBlock",
    "Config",
    "ConfigurationError",
    "CorruptionError",
    "Database",
    "IndexStore",
    "MetadataError",
    "Note",
    "NoteSearch",
    "ParseError",
    "QueryError",
    "Record",
    "SourceError",
    "StoreError",
    "SyncEngine",
    "ZestError",
    "load_config",
    "parse_note",
    "parse_text",
]
