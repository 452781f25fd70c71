"""Parser for Codex JSONL session lines."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tokctl.records import Source, UsageEvent, parse_rfc3339


class CodexStatus(Enum):
    """Outcome of a recognised line that emitted no event."""

    CONTEXT_UPDATED = "context_updated"
    SKIPPED = "skipped"


@dataclass
class CodexCtx:
    """Per-file parser state filled by session_meta and turn_context rows."""

    session_id: str | None = None
    project_path: str | None = None
    current_model: str | None = None


class _ShapeError(Exception):
    """A field had a type the line format does not allow."""


def codex_line_has_signal(line: str) -> bool:
    """Cheap pre-filter for lines that may carry context or token counts."""
    return (
        '"token_count"' in line
        or '"session_meta"' in line
        or '"turn_context"' in line
    )


def _object(value: Any) -> dict | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise _ShapeError
    return value


def _opt_str(obj: dict, key: str) -> str | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _ShapeError
    return value


def _kind(obj: dict) -> str:
    value = obj.get("type", "")
    if not isinstance(value, str):
        raise _ShapeError
    return value


def _count(obj: dict, key: str) -> int:
    if key not in obj:
        return 0
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 2**64:
        raise _ShapeError
    return value


def _token_count(
    payload: dict, timestamp_str: str | None, ctx: CodexCtx
) -> UsageEvent | CodexStatus:
    info = _object(payload.get("info"))
    last = None if info is None else _object(info.get("last_token_usage"))
    if last is None:
        return CodexStatus.SKIPPED
    input_tokens = _count(last, "input_tokens")
    output_tokens = _count(last, "output_tokens")
    _count(last, "reasoning_output_tokens")
    cached = _count(last, "cached_input_tokens")

    if input_tokens + output_tokens + cached == 0:
        return CodexStatus.SKIPPED
    if ctx.session_id is None or timestamp_str is None:
        return CodexStatus.SKIPPED
    try:
        timestamp = parse_rfc3339(timestamp_str)
    except ValueError:
        return CodexStatus.SKIPPED

    # Input is reported including the cached part; keep the buckets disjoint.
    return UsageEvent(
        source=Source.CODEX,
        timestamp=timestamp,
        session_id=ctx.session_id,
        project_path=ctx.project_path,
        model=ctx.current_model or "unknown",
        input_tokens=max(0, input_tokens - cached),
        output_tokens=output_tokens,
        cache_read_tokens=cached,
        cache_write_tokens=0,
        explicit_cost_usd=None,
    )


def _parse(line: str, ctx: CodexCtx) -> UsageEvent | CodexStatus | None:
    row = _object(json.loads(line))
    if row is None:
        raise _ShapeError
    kind = _kind(row)
    timestamp_str = _opt_str(row, "timestamp")
    raw_payload = row.get("payload")
    if raw_payload is None:
        return None

    if kind == "session_meta":
        payload = _object(raw_payload)
        session_id = _opt_str(payload, "id")
        cwd = _opt_str(payload, "cwd")
        if session_id is not None:
            ctx.session_id = session_id
        if cwd is not None:
            ctx.project_path = cwd
        return CodexStatus.CONTEXT_UPDATED
    if kind == "turn_context":
        model = _opt_str(_object(raw_payload), "model")
        if model is not None:
            ctx.current_model = model
        return CodexStatus.CONTEXT_UPDATED
    if kind == "event_msg":
        payload = _object(raw_payload)
        if _kind(payload) != "token_count":
            return None
        return _token_count(payload, timestamp_str, ctx)
    return None


def parse_codex_line(line: str, ctx: CodexCtx) -> UsageEvent | CodexStatus | None:
    """Parse one line, updating ``ctx`` for context rows.

    Returns a UsageEvent for an emittable token_count row, a CodexStatus for
    recognised rows that emit nothing, and None for unrelated or unparsable
    lines.
    """
    if not codex_line_has_signal(line):
        return None
    try:
        return _parse(line, ctx)
    except (ValueError, _ShapeError):
        return None