"""zest CLI — personal note index backed by SQLite full-text search.

Commands:
    zest add FILE...            index (or re-index) the given files
    zest search QUERY...        search notes, print ``path: title``
    zest remove QUERY...        drop matching notes from the index
    zest new                    index files not tracked yet
    zest update                 new + refresh changed + drop deleted files
    zest create                 create a timestamp-named note, print its path
    zest reindex                rebuild the index, repairing broken links
    zest backlinks FILE         notes linking to FILE
    zest links                  every resolved link, one per line
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path

import click

from zest.config import Config, load_config
from zest.db import Database
from zest.errors import ZestError

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS.get(verbosity, logging.DEBUG),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@contextlib.contextmanager
def _open_db(config: Config) -> Iterator[Database]:
    try:
        with Database.open(config) as db:
            yield db
    except ZestError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.option("-v", "--verbose", count=True, help="Verbosity level (repeat for more)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="ZEST_CONFIG",
    help="Configuration file (default: $XDG_CONFIG_HOME/zest/config.yml)",
)
@click.option(
    "--index-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="ZEST_INDEX_DIR",
    help="Index directory (default: $XDG_CACHE_HOME/zest/index)",
)
@click.version_option(package_name="zest-notes")
@click.pass_context
def cli(ctx: click.Context, verbose: int, config_path: Path | None, index_dir: Path | None) -> None:
    """zest — a personal note management tool."""
    _setup_logging(verbose)
    ctx.obj = load_config(config_path, index_dir=index_dir)


# ---------------------------------------------------------------------------
# Write commands
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_obj
def add(config: Config, files: tuple[Path, ...]) -> None:
    """Add documents to the database."""
    with _open_db(config) as db:
        db.add_many(files)


@cli.command()
@click.argument("terms", nargs=-1, required=True)
@click.pass_obj
def remove(config: Config, terms: tuple[str, ...]) -> None:
    """Remove files matching the search terms from the database."""
    with _open_db(config) as db:
        db.remove(" ".join(terms))


@cli.command()
@click.pass_obj
def update(config: Config) -> None:
    """Synchronize the database, also checks for new files."""
    with _open_db(config) as db:
        db.full_update()


@cli.command()
@click.pass_obj
def new(config: Config) -> None:
    """Check for new files under the configured paths."""
    with _open_db(config) as db:
        db.discover_new()


@cli.command()
@click.pass_obj
def create(config: Config) -> None:
    """Create a new file, add it to the database, and print its path."""
    with _open_db(config) as db:
        path, _ = db.create()
    click.echo(str(path))


@cli.command()
@click.pass_obj
def reindex(config: Config) -> None:
    """Reindex the whole database at once; this repairs broken links."""
    with _open_db(config) as db:
        db.reindex()


# ---------------------------------------------------------------------------
# Read commands
# ---------------------------------------------------------------------------


@cli.command()
@click.option("-f", "--only-files", is_flag=True, help="Only print file paths")
@click.option("--table", "as_table", is_flag=True, help="Print a table of the indexed fields")
@click.argument("terms", nargs=-1, required=True)
@click.pass_obj
def search(config: Config, only_files: bool, as_table: bool, terms: tuple[str, ...]) -> None:
    """Search the database and print matching files and titles."""
    query = " ".join(terms)
    with _open_db(config) as db:
        if only_files:
            for path in db.list_paths(query):
                click.echo(path)
        elif as_table:
            click.echo(db.table(query))
        else:
            for note in db.search(query):
                click.echo(f"{note.path}: {note.title}")


@cli.command()
@click.argument("file", type=click.Path(path_type=Path))
@click.pass_obj
def backlinks(config: Config, file: Path) -> None:
    """List the notes that link to FILE."""
    with _open_db(config) as db:
        for path in db.backlinks(file):
            click.echo(path)


@cli.command()
@click.pass_obj
def links(config: Config) -> None:
    """Print every resolved link as ``source<TAB>target``."""
    with _open_db(config) as db:
        for source, target in db.links():
            click.echo(f"{source}\t{target}")


def main() -> None:
    cli()
