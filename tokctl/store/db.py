"""Opening, creating and upgrading the SQLite cache."""

from __future__ import annotations

import os
import re
import sqlite3
from pathlib import Path

from tokctl.repo import Resolver
from tokctl.store.writes import RepoRow, upsert_repo

SCHEMA_VERSION = 6

DDL = """
CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
  path        TEXT PRIMARY KEY,
  source      TEXT NOT NULL,
  project     TEXT,
  size        INTEGER NOT NULL,
  mtime_ns    INTEGER NOT NULL,
  last_offset INTEGER NOT NULL DEFAULT 0,
  n_events    INTEGER NOT NULL DEFAULT 0,
  session_id  TEXT,
  model       TEXT
);

CREATE TABLE IF NOT EXISTS events (
  id           INTEGER PRIMARY KEY,
  file_path    TEXT NOT NULL,
  source       TEXT NOT NULL,
  ts           INTEGER NOT NULL,
  day          TEXT NOT NULL,
  month        TEXT NOT NULL,
  session_id   TEXT NOT NULL,
  project_path TEXT,
  repo         TEXT,
  model        TEXT NOT NULL,
  input        INTEGER NOT NULL,
  output       INTEGER NOT NULL,
  cache_read   INTEGER NOT NULL,
  cache_write  INTEGER NOT NULL,
  cost_usd     REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS repos (
  key          TEXT PRIMARY KEY,
  display_name TEXT NOT NULL,
  origin_url   TEXT,
  first_seen   INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_day       ON events(day);
CREATE INDEX IF NOT EXISTS idx_events_month     ON events(month);
CREATE INDEX IF NOT EXISTS idx_events_source_ts ON events(source, ts);
CREATE INDEX IF NOT EXISTS idx_events_session   ON events(session_id);
CREATE INDEX IF NOT EXISTS idx_events_project   ON events(project_path);
CREATE INDEX IF NOT EXISTS idx_events_repo      ON events(repo);
CREATE INDEX IF NOT EXISTS idx_events_file      ON events(file_path);
"""

_V3_UPGRADE = (
    "ALTER TABLE events ADD COLUMN repo TEXT",
    """CREATE TABLE IF NOT EXISTS repos (
         key          TEXT PRIMARY KEY,
         display_name TEXT NOT NULL,
         origin_url   TEXT,
         first_seen   INTEGER NOT NULL
       )""",
    "CREATE INDEX IF NOT EXISTS idx_events_repo ON events(repo)",
)

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)


class NewerSchemaError(RuntimeError):
    """The cache was written by a newer version with a newer schema."""

    def __init__(self, found: int, expected: int = SCHEMA_VERSION) -> None:
        super().__init__(
            "cache database was created by a newer version of tokctl "
            f"(schema {found}, expected {expected})"
        )
        self.found = found
        self.expected = expected


def cache_path() -> Path:
    """Default cache file location.

    ``$TOKCTL_CACHE_DIR/cache.db``, else ``$XDG_DATA_HOME/tokctl/cache.db``,
    else ``~/.local/share/tokctl/cache.db`` (``/tmp`` standing in for a
    missing ``$HOME``).
    """
    cache_dir = os.environ.get("TOKCTL_CACHE_DIR")
    if cache_dir is not None:
        return Path(cache_dir) / "cache.db"
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home is not None:
        return Path(data_home) / "tokctl" / "cache.db"
    home = Path(os.environ.get("HOME", "/tmp"))
    return home / ".local" / "share" / "tokctl" / "cache.db"


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")


def _write_schema_version(conn: sqlite3.Connection) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )


def _init_schema(conn: sqlite3.Connection) -> None:
    _apply_pragmas(conn)
    conn.executescript(DDL)
    _write_schema_version(conn)
    conn.commit()


def read_schema_version(conn: sqlite3.Connection) -> int | None:
    """Stored schema version, or None when absent, unreadable or not a number."""
    try:
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.Error:
        return None
    if row is None or not isinstance(row[0], str) or not _INTEGER.fullmatch(row[0]):
        return None
    return int(row[0])


def open_store(db_path: str | os.PathLike) -> sqlite3.Connection:
    """Open the cache, creating directories and schema as needed.

    Legacy v2 caches are migrated in place, older ones are rebuilt from
    scratch. Raises NewerSchemaError when a newer version wrote the cache.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
    )
    conn.commit()

    version = read_schema_version(conn)
    if version is None:
        _init_schema(conn)
    elif version == SCHEMA_VERSION:
        _apply_pragmas(conn)
        conn.executescript(DDL)
    elif version == 2:
        try:
            _migrate_v2_to_v3(conn)
        except sqlite3.Error as err:
            conn.close()
            raise sqlite3.DatabaseError(
                "migrating legacy v2 cache failed; try running with --rebuild"
            ) from err
    elif version < SCHEMA_VERSION:
        conn.close()
        try:
            db_path.unlink()
        except OSError:
            pass
        conn = sqlite3.connect(db_path)
        _init_schema(conn)
    else:
        conn.close()
        raise NewerSchemaError(version)
    return conn


def _migrate_v2_to_v3(conn: sqlite3.Connection) -> None:
    """Add the repo column and table, backfilling from existing project paths.

    Everything runs in one transaction; on failure the schema version stays
    at 2.
    """
    _apply_pragmas(conn)
    previous = conn.isolation_level
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            _backfill_repos(conn)
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
    finally:
        conn.isolation_level = previous


def _backfill_repos(conn: sqlite3.Connection) -> None:
    for statement in _V3_UPGRADE:
        conn.execute(statement)

    rows = conn.execute(
        "SELECT project_path, MIN(ts) FROM events "
        "WHERE project_path IS NOT NULL GROUP BY project_path"
    ).fetchall()

    resolver = Resolver()
    first_seen: dict[str, int] = {}
    for project_path, min_ts in rows:
        identity = resolver.resolve(project_path)
        if identity.key is None:
            continue
        conn.execute(
            "UPDATE events SET repo = ? WHERE project_path = ?",
            (identity.key, project_path),
        )
        known = first_seen.get(identity.key)
        first_seen[identity.key] = min_ts if known is None else min(known, min_ts)

    for key, identity in resolver.resolved_repos():
        upsert_repo(
            conn,
            RepoRow(
                key=key,
                display_name=identity.display_name,
                origin_url=identity.origin_url,
                first_seen=first_seen.get(key, 0),
            ),
        )

    _write_schema_version(conn)