"""Unit tests for zest.resolver."""

import logging
from pathlib import Path

import pytest

from zest.note import Note
from zest.resolver import ReferenceResolver, _local_target
from zest.store import IndexStore, Record


@pytest.fixture()
def store(tmp_path: Path):
    with IndexStore.open(tmp_path / "index") as s:
        for path in ("/a/x.md", "/b/x.md", "/a/only.md"):
            s.upsert(Record(path=path, last_modified=1.0))
        s.commit()
        yield s


@pytest.fixture()
def resolver(store: IndexStore) -> ReferenceResolver:
    return ReferenceResolver(store)


def _note(*refs: str) -> Note:
    return Note(path=Path("/a/source.md"), title="", content="", refs=list(refs))


# ---------------------------------------------------------------------------
# _local_target
# ---------------------------------------------------------------------------


class TestLocalTarget:
    def test_plain_path(self):
        assert _local_target("notes/x.md") == "notes/x.md"

    def test_fragment_is_stripped(self):
        assert _local_target("x.md#section") == "x.md"

    @pytest.mark.parametrize("ref", ["https://example.com/x.md", "mailto:me@example.com"])
    def test_external(self, ref):
        assert _local_target(ref) is None

    @pytest.mark.parametrize("ref", ["http://[oops", "//[x"])
    def test_unsplittable_url(self, ref):
        assert _local_target(ref) is None

    def test_drive_letter_is_local(self):
        assert _local_target("C:/notes/x.md") == "C:/notes/x.md"


# ---------------------------------------------------------------------------
# ReferenceResolver
# ---------------------------------------------------------------------------


class TestResolve:
    def test_unique_match(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("only.md")) == ["/a/only.md"]

    def test_ambiguous_match_records_all(self, resolver: ReferenceResolver, caplog):
        with caplog.at_level(logging.WARNING, logger="zest.resolver"):
            resolved = resolver.resolve(_note("x.md"))
        assert sorted(resolved) == ["/a/x.md", "/b/x.md"]
        assert any("multiple files" in r.message for r in caplog.records)

    def test_qualified_reference_disambiguates(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("b/x.md")) == ["/b/x.md"]

    def test_broken_link(self, resolver: ReferenceResolver, caplog):
        with caplog.at_level(logging.WARNING, logger="zest.resolver"):
            assert resolver.resolve(_note("missing.md")) == []
        assert any("broken link" in r.message for r in caplog.records)

    def test_external_links_are_skipped(self, resolver: ReferenceResolver, caplog):
        with caplog.at_level(logging.WARNING, logger="zest.resolver"):
            assert resolver.resolve(_note("https://example.com/only.md")) == []
        assert caplog.records == []

    def test_unsplittable_url_is_skipped(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("http://[oops", "only.md")) == ["/a/only.md"]

    def test_destination_without_words(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("...")) == []

    def test_fragment_link(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("only.md#intro")) == ["/a/only.md"]

    def test_pure_fragment_is_ignored(self, resolver: ReferenceResolver):
        assert resolver.resolve(_note("#intro")) == []

    def test_order_and_duplicates_follow_refs(self, resolver: ReferenceResolver):
        resolved = resolver.resolve(_note("only.md", "missing.md", "only.md"))
        assert resolved == ["/a/only.md", "/a/only.md"]

    def test_uncommitted_targets_are_not_seen(self, store: IndexStore, resolver: ReferenceResolver):
        store.upsert(Record(path="/a/fresh.md", last_modified=1.0))
        assert resolver.resolve(_note("fresh.md")) == []
        store.commit()
        assert resolver.resolve(_note("fresh.md")) == ["/a/fresh.md"]
