"""Unit tests for zest.sync.SyncEngine."""

import logging
import os
import sqlite3
import textwrap
from pathlib import Path

import pytest

import zest.sync
from zest.config import Config
from zest.errors import ConfigurationError, CorruptionError
from zest.store import IndexStore, Record
from zest.sync import SyncEngine


def _write_note(directory: Path, name: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.md"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path.resolve()


def _bump_mtime(path: Path, seconds: float = 10.0) -> None:
    st = path.stat()
    os.utime(path, (st.st_atime + seconds, st.st_mtime + seconds))


@pytest.fixture()
def notes_dir(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    _write_note(root, "alpha", """\
        ---
        tags: [work]
        ---
        # Alpha
        First note, see [beta](beta.md).
    """)
    _write_note(root, "beta", """\
        # Beta
        Second note.
    """)
    _write_note(root / "sub", "gamma", """\
        # Gamma
        Nested note.
    """)
    return root


@pytest.fixture()
def store(tmp_path: Path):
    with IndexStore.open(tmp_path / "index") as s:
        yield s


@pytest.fixture()
def engine(store: IndexStore, notes_dir: Path) -> SyncEngine:
    return SyncEngine(store, Config(paths=[str(notes_dir)]))


# ---------------------------------------------------------------------------
# add / add_many
# ---------------------------------------------------------------------------


class TestAdd:
    def test_add_one(self, engine: SyncEngine, notes_dir: Path):
        opstamp = engine.add(notes_dir / "beta.md")
        assert opstamp == 1
        assert engine.store.paths("*") == [str((notes_dir / "beta.md").resolve())]

    def test_add_many_skips_unparsable(self, engine: SyncEngine, notes_dir: Path, caplog):
        bad = _write_note(notes_dir, "bad", "---\ntags: [oops\n---\n# Bad\n")
        with caplog.at_level(logging.ERROR):
            engine.add_many([notes_dir / "alpha.md", bad, notes_dir / "missing.md"])
        assert engine.store.paths("*") == [str((notes_dir / "alpha.md").resolve())]
        assert any("could not be added" in r.message for r in caplog.records)

    def test_add_stores_mtime(self, engine: SyncEngine, notes_dir: Path):
        path = (notes_dir / "beta.md").resolve()
        engine.add(path)
        assert dict(engine.store.stamps())[str(path)] == path.stat().st_mtime

    def test_re_adding_replaces(self, engine: SyncEngine, notes_dir: Path):
        path = notes_dir / "beta.md"
        engine.add(path)
        path.write_text("# Beta Two\n", encoding="utf-8")
        engine.add(path)
        [record] = engine.store.query("*")
        assert record.title == "Beta Two"


# ---------------------------------------------------------------------------
# discover_new
# ---------------------------------------------------------------------------


class TestDiscoverNew:
    def test_indexes_every_file_recursively(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        assert sorted(engine.store.paths("*")) == sorted(
            str(p.resolve()) for p in notes_dir.rglob("*.md")
        )

    def test_idempotent(self, engine: SyncEngine):
        first = engine.discover_new()
        second = engine.discover_new()
        assert second == first
        assert len(engine.store.paths("*")) == 3

    def test_second_run_does_not_parse(self, engine: SyncEngine, monkeypatch):
        engine.discover_new()
        calls = []
        monkeypatch.setattr(zest.sync, "parse_note", lambda p: calls.append(p))
        engine.discover_new()
        assert calls == []

    def test_picks_up_new_file(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        delta = _write_note(notes_dir, "delta", "# Delta\n")
        engine.discover_new()
        assert engine.store.paths("delta") == [str(delta)]

    def test_skips_hidden_entries(self, engine: SyncEngine, notes_dir: Path):
        _write_note(notes_dir, ".secret", "# Secret\n")
        _write_note(notes_dir / ".git", "config", "# Hidden dir\n")
        engine.discover_new()
        assert engine.store.paths("secret") == []
        assert engine.store.paths("hidden") == []

    def test_unparsable_file_is_skipped(self, engine: SyncEngine, notes_dir: Path, caplog):
        (notes_dir / "blob.bin").write_bytes(b"\xff\xfe\x00garbage")
        with caplog.at_level(logging.WARNING):
            engine.discover_new()
        assert len(engine.store.paths("*")) == 3
        assert any("Could not parse" in r.message for r in caplog.records)

    def test_malformed_link_does_not_abort(self, engine: SyncEngine, notes_dir: Path):
        bad = _write_note(notes_dir, "bad", "# Bad\nsee [x](http://[oops) and [y](//[x)\n")
        engine.discover_new()
        assert len(engine.store.paths("*")) == 4
        [record] = engine.store.query("title:bad")
        assert record.path == str(bad)
        assert record.refs == []

    def test_root_that_is_not_a_directory(self, store: IndexStore, tmp_path: Path, caplog):
        not_dir = tmp_path / "file.md"
        not_dir.write_text("# Not a root\n")
        engine = SyncEngine(store, Config(paths=[str(not_dir), str(tmp_path / "missing")]))
        with caplog.at_level(logging.WARNING):
            assert engine.discover_new() == 0
        assert sum("is not a directory" in r.message for r in caplog.records) == 2

    def test_no_roots(self, store: IndexStore):
        assert SyncEngine(store, Config()).discover_new() == 0


# ---------------------------------------------------------------------------
# full_update
# ---------------------------------------------------------------------------


class TestFullUpdate:
    def test_includes_discovery(self, engine: SyncEngine):
        engine.full_update()
        assert len(engine.store.paths("*")) == 3

    def test_changed_file_is_reindexed(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        beta = notes_dir / "beta.md"
        beta.write_text("# Renamed\nSecond note.\n", encoding="utf-8")
        _bump_mtime(beta)
        engine.full_update()
        assert engine.store.paths("title:renamed") == [str(beta.resolve())]
        assert engine.store.paths("title:beta") == []

    def test_unchanged_mtime_is_not_reparsed(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        beta = notes_dir / "beta.md"
        st = beta.stat()
        beta.write_text("# Renamed\n", encoding="utf-8")
        os.utime(beta, ns=(st.st_atime_ns, st.st_mtime_ns))
        before = engine.store.opstamp
        assert engine.full_update() == before
        assert engine.store.paths("title:beta") == [str(beta.resolve())]

    def test_deleted_file_is_removed(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        (notes_dir / "sub" / "gamma.md").unlink()
        engine.full_update()
        assert engine.store.paths("gamma") == []
        assert len(engine.store.paths("*")) == 2

    def test_tracked_file_outside_roots_is_kept(
        self, engine: SyncEngine, tmp_path: Path
    ):
        outside = _write_note(tmp_path / "elsewhere", "loose", "# Loose\n")
        engine.add(outside)
        engine.full_update()
        assert engine.store.paths("loose") == [str(outside)]

    def test_parse_failure_keeps_stale_record(self, engine: SyncEngine, notes_dir: Path, caplog):
        engine.discover_new()
        beta = notes_dir / "beta.md"
        beta.write_text("---\ntags: [broken\n---\n# Broken\n", encoding="utf-8")
        _bump_mtime(beta)
        with caplog.at_level(logging.WARNING):
            engine.full_update()
        assert engine.store.paths("title:beta") == [str(beta.resolve())]
        assert any("Could not update" in r.message for r in caplog.records)

    def test_missing_last_modified_aborts(self, engine: SyncEngine, notes_dir: Path):
        engine.store.upsert(Record(path=str(notes_dir / "beta.md"), title="Beta"))
        before = engine.store.commit()
        _write_note(notes_dir, "delta", "# Delta\n")

        with pytest.raises(CorruptionError):
            engine.full_update()

        assert not engine.store.has_staged
        assert engine.store.commit() == before
        assert engine.store.paths("delta") == []

    def test_missing_path_aborts(self, engine: SyncEngine, notes_dir: Path, tmp_path: Path):
        conn = sqlite3.connect(tmp_path / "index" / "index.db")
        with conn:
            conn.execute("INSERT INTO notes (path, last_modified) VALUES (NULL, 1.0)")
        conn.close()
        engine.store.reload()
        before = engine.store.opstamp

        with pytest.raises(CorruptionError):
            engine.full_update()

        assert not engine.store.has_staged
        assert engine.store.commit() == before
        assert engine.store.exact_lookup("path", str((notes_dir / "alpha.md").resolve())) == 0


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_and_indexes_note(self, engine: SyncEngine, notes_dir: Path):
        path, opstamp = engine.create()
        assert path.parent == notes_dir.resolve()
        assert path.suffix == ".md"
        assert path.exists()
        assert opstamp == 1
        assert engine.store.exact_lookup("path", str(path)) == 1

    def test_requires_a_root(self, store: IndexStore):
        with pytest.raises(ConfigurationError):
            SyncEngine(store, Config()).create()


# ---------------------------------------------------------------------------
# reindex / remove
# ---------------------------------------------------------------------------


class TestReindex:
    def test_repairs_broken_links(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        [alpha] = engine.store.query("title:alpha")
        assert alpha.refs == []  # beta was not committed yet when alpha was staged

        engine.reindex()
        [alpha] = engine.store.query("title:alpha")
        assert alpha.refs == [str((notes_dir / "beta.md").resolve())]

    def test_drops_unparsable_notes(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        (notes_dir / "beta.md").unlink()
        engine.reindex()
        assert len(engine.store.paths("*")) == 2


class TestRemove:
    def test_remove_by_query(self, engine: SyncEngine, notes_dir: Path):
        engine.discover_new()
        engine.remove("tag:work")
        assert engine.store.paths("alpha") == []
        assert (notes_dir / "alpha.md").exists()
