"""Table and JSON rendering of report rows."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from tokctl.formatting import fmt_cost, fmt_num
from tokctl.records import AggregateRow, RepoAggregateRow, ReportKind

_TOKEN_HEADERS = ["input", "output", "cache_read", "cache_write", "total", "cost_usd"]
_KEY_HEADERS = {
    ReportKind.DAILY: "date",
    ReportKind.MONTHLY: "month",
    ReportKind.SESSION: "session",
}
_JSON_KEYS = {
    ReportKind.DAILY: "date",
    ReportKind.MONTHLY: "month",
    ReportKind.SESSION: "session_id",
}


def _box(header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Draw a full-border box table with a double line under the header."""
    widths = [len(h) for h in header]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def rule(left: str, fill: str, mid: str, right: str) -> str:
        return left + mid.join(fill * (w + 2) for w in widths) + right

    def line(cells: Sequence[str]) -> str:
        padded = (f" {cell.ljust(w)} " for cell, w in zip(cells, widths))
        return "│" + "┆".join(padded) + "│"

    out = [rule("┌", "─", "┬", "┐"), line(header)]
    if rows:
        out.append(rule("╞", "═", "╪", "╡"))
        separator = rule("├", "╌", "┼", "┤")
        for i, row in enumerate(rows):
            if i:
                out.append(separator)
            out.append(line(row))
    out.append(rule("└", "─", "┴", "┘"))
    return "\n".join(out)


def _fmt_timestamp(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _round_cost(cost: float) -> float:
    """Round to four decimals, halves away from zero."""
    scaled = abs(cost) * 10_000.0
    return math.copysign(math.floor(scaled + 0.5), cost) / 10_000.0


def _token_cells(r: AggregateRow | RepoAggregateRow) -> list[str]:
    return [
        fmt_num(r.input_tokens),
        fmt_num(r.output_tokens),
        fmt_num(r.cache_read_tokens),
        fmt_num(r.cache_write_tokens),
        fmt_num(r.total_tokens),
        fmt_cost(r.cost_usd),
    ]


def _totals(rows: Iterable[AggregateRow | RepoAggregateRow]) -> list[str]:
    rows = list(rows)
    return [
        fmt_num(sum(r.input_tokens for r in rows)),
        fmt_num(sum(r.output_tokens for r in rows)),
        fmt_num(sum(r.cache_read_tokens for r in rows)),
        fmt_num(sum(r.cache_write_tokens for r in rows)),
        fmt_num(sum(r.total_tokens for r in rows)),
        fmt_cost(sum((r.cost_usd for r in rows), 0.0)),
    ]


def render_table(
    rows: Sequence[AggregateRow], kind: ReportKind, show_source: bool = False
) -> str:
    """Render report rows as a box table with a TOTAL row when non-empty."""
    kind = ReportKind(kind)
    if kind is ReportKind.SESSION:
        header = ["session", "source", "project", "last_activity", *_TOKEN_HEADERS]
    elif show_source:
        header = [_KEY_HEADERS[kind], "source", *_TOKEN_HEADERS]
    else:
        header = [_KEY_HEADERS[kind], *_TOKEN_HEADERS]

    body: list[list[str]] = []
    for r in rows:
        if kind is ReportKind.SESSION:
            last = _fmt_timestamp(r.latest_timestamp) if r.latest_timestamp else ""
            lead = [r.key[:8], r.source_label, r.project_path or "", last]
        elif show_source:
            lead = [r.key, r.source_label]
        else:
            lead = [r.key]
        body.append(lead + _token_cells(r))

    if rows:
        if kind is ReportKind.SESSION:
            lead = ["TOTAL", "", "", ""]
        elif show_source:
            lead = ["TOTAL", ""]
        else:
            lead = ["TOTAL"]
        body.append(lead + _totals(rows))

    return _box(header, body)


def _row_to_json(r: AggregateRow, kind: ReportKind, show_source: bool) -> dict[str, Any]:
    obj: dict[str, Any] = {_JSON_KEYS[kind]: r.key}
    if kind is ReportKind.SESSION:
        obj["source"] = r.source_label
        obj["project_path"] = r.project_path
        obj["latest_timestamp"] = (
            r.latest_timestamp.isoformat() if r.latest_timestamp else None
        )
    elif show_source:
        obj["source"] = r.source_label
    obj["input"] = r.input_tokens
    obj["output"] = r.output_tokens
    obj["cache_read"] = r.cache_read_tokens
    obj["cache_write"] = r.cache_write_tokens
    obj["totalTokens"] = r.total_tokens
    obj["costUsd"] = _round_cost(r.cost_usd)
    return obj


def render_json(
    rows: Sequence[AggregateRow], kind: ReportKind, show_source: bool = False
) -> str:
    """Render report rows as a pretty-printed JSON array."""
    kind = ReportKind(kind)
    return json.dumps(
        [_row_to_json(r, kind, show_source) for r in rows],
        indent=2,
        ensure_ascii=False,
    )


def _sorted_repos(rows: Iterable[RepoAggregateRow]) -> list[RepoAggregateRow]:
    """Most expensive first, with the no-repo bucket always last."""
    return sorted(rows, key=lambda r: (r.is_no_repo(), -r.cost_usd))


def render_repo_table(rows: Sequence[RepoAggregateRow]) -> str:
    """Render repo rows as a box table with a TOTAL row when non-empty."""
    header = ["repo", "sessions", *_TOKEN_HEADERS]
    ordered = _sorted_repos(rows)
    body = [[r.display_name, fmt_num(r.sessions), *_token_cells(r)] for r in ordered]
    if ordered:
        body.append(
            ["TOTAL", fmt_num(sum(r.sessions for r in ordered)), *_totals(ordered)]
        )
    return _box(header, body)


def render_repo_json(rows: Sequence[RepoAggregateRow]) -> str:
    """Render repo rows as a pretty-printed JSON array."""
    out = [
        {
            "repo": r.display_name,
            "key": None if r.is_no_repo() else r.key,
            "origin_url": r.origin_url,
            "sessions": r.sessions,
            "input": r.input_tokens,
            "output": r.output_tokens,
            "cache_read": r.cache_read_tokens,
            "cache_write": r.cache_write_tokens,
            "totalTokens": r.total_tokens,
            "costUsd": _round_cost(r.cost_usd),
        }
        for r in _sorted_repos(rows)
    ]
    return json.dumps(out, indent=2, ensure_ascii=False)


def render_warnings(unknown_models: Iterable[str], skipped_lines: int) -> list[str]:
    """Warning lines for unpriced models and skipped malformed lines."""
    out: list[str] = []
    models = sorted(set(unknown_models))
    if models:
        out.append(
            f"warning: no price for model(s): {', '.join(models)} (cost treated as 0)"
        )
    if skipped_lines > 0:
        out.append(f"warning: skipped {skipped_lines} malformed JSONL line(s)")
    return out