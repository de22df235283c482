"""Reference resolution: raw link destinations → indexed note paths.

Each raw destination of a note being staged is looked up as a ``file:``
term in the committed index.  Resolution happens when a note is written,
so a referrer keeps pointing at a target's old path until it is itself
re-indexed (``reindex`` repairs everything at once).
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from zest.note import Note
    from zest.store import IndexStore

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w")


def _local_target(ref: str) -> str | None:
    """Strip a ``#fragment``; ``None`` for external (``scheme:``) links.

    Destinations :func:`~urllib.parse.urlsplit` rejects (``http://[oops``)
    are not local files either and also give ``None``.
    """
    try:
        parts = urlsplit(ref)
    except ValueError as exc:
        logger.debug("Unusable link destination %r: %s", ref, exc)
        return None
    # one-letter schemes are Windows drive letters
    if len(parts.scheme) > 1:
        return None
    return ref.split("#", 1)[0]


class ReferenceResolver:
    """Turns a note's raw ``refs`` into the paths of the notes they match."""

    def __init__(self, store: "IndexStore") -> None:
        self.store = store

    def resolve_one(self, source: str, ref: str) -> list[str]:
        target = _local_target(ref)
        if target is None:
            logger.debug("%s links to external %s", source, ref)
            return []
        if not _WORD_RE.search(target):
            return []

        matches = self.store.find("file", target)
        if not matches:
            logger.warning("%s contains a broken link: %s", source, ref)
        elif len(matches) == 1:
            logger.info("%s references %s", source, matches[0])
        else:
            logger.warning("%s contains a link that matches multiple files: %s", source, ref)
        return matches

    def resolve(self, note: "Note") -> list[str]:
        """Resolved backreferences for every raw reference of *note*, in order."""
        source = str(note.path)
        resolved: list[str] = []
        for ref in note.refs:
            resolved.extend(self.resolve_one(source, ref))
        return resolved
