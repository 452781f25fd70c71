"""Aggregate report queries over the events cache."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from tokctl.records import (
    NO_REPO_SENTINEL,
    AggregateRow,
    RepoAggregateRow,
    Source,
)
from tokctl.repo import RepoIdentity, project_basename

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_TIME_CLAUSE = "AND (? IS NULL OR e.ts >= ?) AND (? IS NULL OR e.ts <= ?)"


class RepoFilterKind(Enum):
    """How a repo filter selects events."""

    NO_REPO = "no_repo"
    DISPLAY_NAME = "display_name"
    KEY_PREFIX = "key_prefix"


@dataclass(frozen=True)
class RepoFilterSpec:
    """A repo filter: no-repo events, a display name, or a key prefix."""

    kind: RepoFilterKind
    value: str | None = None


@dataclass
class QueryFilter:
    """Restrictions applied to every report query."""

    source: Source | None = None
    since_ms: int | None = None
    until_ms: int | None = None
    repo: RepoFilterSpec | None = None


class AmbiguousRepoError(ValueError):
    """A repo name matches several repositories."""

    def __init__(self, name: str, keys: list[str]) -> None:
        super().__init__(
            f"repo name '{name}' is ambiguous — matches {len(keys)} repos: "
            f"{', '.join(keys)}. Pass a path prefix (e.g. /Users/you/dev/…) "
            "to disambiguate."
        )
        self.name = name
        self.keys = keys


def _source_clause(f: QueryFilter) -> str:
    return "AND e.source = ?" if f.source is not None else ""


def _repo_clause(f: QueryFilter) -> str:
    if f.repo is None:
        return ""
    kind = f.repo.kind
    if kind is RepoFilterKind.NO_REPO:
        return "AND e.repo IS NULL"
    if kind is RepoFilterKind.DISPLAY_NAME:
        return "AND e.repo IN (SELECT key FROM repos WHERE display_name = ?)"
    return "AND e.repo IS NOT NULL AND e.repo LIKE ?"


def _where(f: QueryFilter) -> str:
    return f"WHERE 1=1 {_source_clause(f)} {_TIME_CLAUSE} {_repo_clause(f)}"


def _params(f: QueryFilter) -> list[Any]:
    out: list[Any] = []
    if f.source is not None:
        out.append(Source(f.source).value)
    # The time clause binds each bound twice: NULL check, then comparison.
    out += [f.since_ms, f.since_ms, f.until_ms, f.until_ms]
    if f.repo is not None:
        if f.repo.kind is RepoFilterKind.DISPLAY_NAME:
            out.append(f.repo.value)
        elif f.repo.kind is RepoFilterKind.KEY_PREFIX:
            out.append(f"{f.repo.value}%")
    return out


def _from_millis(ms: int) -> datetime:
    try:
        return _EPOCH + timedelta(milliseconds=ms)
    except OverflowError:
        return datetime.now(timezone.utc)


def _bucket_report(
    conn: sqlite3.Connection, column: str, f: QueryFilter
) -> list[AggregateRow]:
    sql = f"""SELECT
             e.{column} AS key,
             SUM(e.input), SUM(e.output), SUM(e.cache_read), SUM(e.cache_write),
             SUM(e.input + e.output + e.cache_read + e.cache_write),
             SUM(e.cost_usd)
           FROM events e
           {_where(f)}
           GROUP BY key
           ORDER BY key ASC"""
    source = None if f.source is None else Source(f.source)
    return [
        AggregateRow(
            key=key,
            source=source,
            input_tokens=int(inp),
            output_tokens=int(out),
            cache_read_tokens=int(cr),
            cache_write_tokens=int(cw),
            total_tokens=int(total),
            cost_usd=float(cost),
        )
        for key, inp, out, cr, cw, total, cost in conn.execute(sql, _params(f))
    ]


def daily_report(
    conn: sqlite3.Connection, filter: QueryFilter | None = None
) -> list[AggregateRow]:
    """Totals per local day, oldest first."""
    return _bucket_report(conn, "day", filter or QueryFilter())


def monthly_report(
    conn: sqlite3.Connection, filter: QueryFilter | None = None
) -> list[AggregateRow]:
    """Totals per local month, oldest first."""
    return _bucket_report(conn, "month", filter or QueryFilter())


def session_report(
    conn: sqlite3.Connection, filter: QueryFilter | None = None
) -> list[AggregateRow]:
    """Totals per (source, session), most recently active first.

    Raises ValueError when a stored source name is unknown.
    """
    f = filter or QueryFilter()
    sql = f"""SELECT
             e.session_id,
             e.source,
             MAX(r.display_name),
             MAX(e.project_path),
             MAX(e.ts) AS latest_ts,
             SUM(e.input), SUM(e.output), SUM(e.cache_read), SUM(e.cache_write),
             SUM(e.input + e.output + e.cache_read + e.cache_write),
             SUM(e.cost_usd)
           FROM events e
           LEFT JOIN repos r ON r.key = e.repo
           {_where(f)}
           GROUP BY e.source, e.session_id
           ORDER BY latest_ts DESC"""
    rows: list[AggregateRow] = []
    for (
        session_id, source, repo_display, project_path, latest_ms,
        inp, out, cr, cw, total, cost,
    ) in conn.execute(sql, _params(f)):
        shown = repo_display
        if shown is None and project_path is not None:
            shown = project_basename(project_path)
        rows.append(
            AggregateRow(
                key=session_id,
                source=Source(source),
                project_path=shown,
                latest_timestamp=_from_millis(latest_ms),
                input_tokens=int(inp),
                output_tokens=int(out),
                cache_read_tokens=int(cr),
                cache_write_tokens=int(cw),
                total_tokens=int(total),
                cost_usd=float(cost),
            )
        )
    return rows


def repo_report(
    conn: sqlite3.Connection, filter: QueryFilter | None = None
) -> list[RepoAggregateRow]:
    """Totals per repository (plus the no-repo bucket), most expensive first."""
    f = filter or QueryFilter()
    sql = f"""SELECT
             COALESCE(e.repo, ?) AS key,
             COALESCE(r.display_name, ?),
             r.origin_url,
             COUNT(DISTINCT e.source || char(31) || e.session_id),
             SUM(e.input), SUM(e.output), SUM(e.cache_read), SUM(e.cache_write),
             SUM(e.input + e.output + e.cache_read + e.cache_write),
             SUM(e.cost_usd) AS cost_usd,
             MAX(e.ts)
           FROM events e
           LEFT JOIN repos r ON r.key = e.repo
           {_where(f)}
           GROUP BY key
           ORDER BY cost_usd DESC"""
    params = [NO_REPO_SENTINEL, RepoIdentity.NO_REPO_DISPLAY, *_params(f)]
    return [
        RepoAggregateRow(
            key=key,
            display_name=name,
            origin_url=origin,
            sessions=int(sessions),
            input_tokens=int(inp),
            output_tokens=int(out),
            cache_read_tokens=int(cr),
            cache_write_tokens=int(cw),
            total_tokens=int(total),
            cost_usd=float(cost),
            latest_timestamp=_from_millis(latest),
        )
        for key, name, origin, sessions, inp, out, cr, cw, total, cost, latest
        in conn.execute(sql, params)
    ]


def resolve_repo_filter(conn: sqlite3.Connection, name: str) -> RepoFilterSpec:
    """Turn a user-supplied repo name into a filter.

    ``(no-repo)`` selects unresolved events, a value starting with ``/`` is a
    key prefix, anything else a display name. Raises AmbiguousRepoError when
    the display name matches more than one repository.
    """
    if name == RepoIdentity.NO_REPO_DISPLAY:
        return RepoFilterSpec(RepoFilterKind.NO_REPO)
    if name.startswith("/"):
        return RepoFilterSpec(RepoFilterKind.KEY_PREFIX, name)
    keys = [
        key
        for (key,) in conn.execute(
            "SELECT key FROM repos WHERE display_name = ?", (name,)
        )
    ]
    if len(keys) > 1:
        raise AmbiguousRepoError(name, keys)
    return RepoFilterSpec(RepoFilterKind.DISPLAY_NAME, name)