"""Writes to and reads from the file manifest, events and repos tables."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from tokctl.records import Source


@dataclass
class FileManifestRow:
    """What is known about one indexed source file."""

    path: Path
    source: Source
    project: str | None
    size: int
    mtime_ns: int
    last_offset: int
    n_events: int
    session_id: str | None
    model: str | None


@dataclass
class EventRow:
    """One event as stored in the events table."""

    file_path: str
    source: Source
    ts: int
    day: str
    month: str
    session_id: str
    project_path: str | None
    repo: str | None
    model: str
    input: int
    output: int
    cache_read: int
    cache_write: int
    cost_usd: float


@dataclass
class RepoRow:
    """One resolved repository."""

    key: str
    display_name: str
    origin_url: str | None
    first_seen: int


_FILE_COLUMNS = (
    "path",
    "source",
    "project",
    "size",
    "mtime_ns",
    "last_offset",
    "n_events",
    "session_id",
    "model",
)
# Manifest columns whose stored value survives an update that carries NULL.
_FILE_STICKY = frozenset({"session_id", "model"})

_EVENT_COLUMNS = (
    "file_path",
    "source",
    "ts",
    "day",
    "month",
    "session_id",
    "project_path",
    "repo",
    "model",
    "input",
    "output",
    "cache_read",
    "cache_write",
    "cost_usd",
)

_REPO_COLUMNS = ("key", "display_name", "origin_url", "first_seen")


def _insert_sql(table: str, columns: Sequence[str]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _upsert_sql(
    table: str,
    columns: Sequence[str],
    conflict: str,
    updated: Iterable[str],
    sticky: frozenset[str] = frozenset(),
) -> str:
    assignments = ", ".join(
        f"{c} = COALESCE(excluded.{c}, {table}.{c})" if c in sticky else f"{c} = excluded.{c}"
        for c in updated
    )
    return f"{_insert_sql(table, columns)} ON CONFLICT({conflict}) DO UPDATE SET {assignments}"


_FILE_UPSERT = _upsert_sql(
    "files",
    _FILE_COLUMNS,
    "path",
    (c for c in _FILE_COLUMNS if c != "path"),
    _FILE_STICKY,
)
_REPO_UPSERT = _upsert_sql("repos", _REPO_COLUMNS, "key", ("display_name", "origin_url"))
_EVENT_INSERT = _insert_sql("events", _EVENT_COLUMNS)


def load_file_manifest(conn: sqlite3.Connection) -> dict[Path, FileManifestRow]:
    """Load every manifest row keyed by path.

    Raises ValueError when a stored source name is unknown.
    """
    cursor = conn.execute(f"SELECT {', '.join(_FILE_COLUMNS)} FROM files")
    manifest: dict[Path, FileManifestRow] = {}
    for record in cursor:
        fields = dict(zip(_FILE_COLUMNS, record))
        fields["path"] = Path(fields["path"])
        fields["source"] = Source(fields["source"])
        row = FileManifestRow(**fields)
        manifest[row.path] = row
    return manifest


def upsert_file_manifest(conn: sqlite3.Connection, row: FileManifestRow) -> None:
    """Insert or update a manifest row, keeping known session id and model."""
    values = {c: getattr(row, c) for c in _FILE_COLUMNS}
    values["path"] = str(row.path)
    values["source"] = Source(row.source).value
    conn.execute(_FILE_UPSERT, tuple(values[c] for c in _FILE_COLUMNS))


def upsert_repo(conn: sqlite3.Connection, row: RepoRow) -> None:
    """Insert or update a repo row; ``first_seen`` is kept on conflict."""
    conn.execute(_REPO_UPSERT, tuple(getattr(row, c) for c in _REPO_COLUMNS))


def delete_file_and_events(conn: sqlite3.Connection, file_path: str) -> None:
    """Remove a file's events and its manifest row."""
    for table, column in (("events", "file_path"), ("files", "path")):
        conn.execute(f"DELETE FROM {table} WHERE {column} = ?", (file_path,))


def _event_params(row: EventRow) -> tuple:
    return tuple(
        Source(row.source).value if c == "source" else getattr(row, c) for c in _EVENT_COLUMNS
    )


def insert_events(conn: sqlite3.Connection, rows: Iterable[EventRow]) -> int:
    """Insert events and return how many were written."""
    params = [_event_params(r) for r in rows]
    if params:
        conn.executemany(_EVENT_INSERT, params)
    return len(params)