"""Parser for Claude JSONL transcript lines."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tokctl.records import Source, UsageEvent, parse_rfc3339


class ClaudeParseStatus(Enum):
    """Why a line produced no event."""

    SKIPPED = "skipped"
    MALFORMED = "malformed"


@dataclass
class ClaudeParsed:
    """An event parsed from a line, with the message id used for dedupe."""

    event: UsageEvent
    message_id: str | None


class _ShapeError(Exception):
    """A field had a type the line format does not allow."""


def claude_line_has_signal(line: str) -> bool:
    """Cheap pre-filter: lines missing either marker cannot carry usage."""
    return '"type":"assistant"' in line and '"usage"' in line


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


def _count(obj: dict, key: str) -> int:
    if key not in obj:
        return 0
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 2**64:
        raise _ShapeError
    return value


def _decode(line: str) -> tuple[str, str | None, str | None, dict | None]:
    row = _object(json.loads(line))
    if row is None:
        raise _ShapeError
    kind = row.get("type", "")
    if not isinstance(kind, str):
        raise _ShapeError
    session_id = _opt_str(row, "sessionId")
    timestamp = _opt_str(row, "timestamp")
    message = _object(row.get("message"))
    parsed_message = None
    if message is not None:
        usage = _object(message.get("usage"))
        parsed_message = {
            "id": _opt_str(message, "id"),
            "model": _opt_str(message, "model"),
            "usage": None
            if usage is None
            else {
                "input": _count(usage, "input_tokens"),
                "output": _count(usage, "output_tokens"),
                "cache_read": _count(usage, "cache_read_input_tokens"),
                "cache_write": _count(usage, "cache_creation_input_tokens"),
            },
        }
    return kind, session_id, timestamp, parsed_message


def parse_claude_line_classified(
    line: str, project_path: str | None = None
) -> ClaudeParsed | ClaudeParseStatus:
    """Parse one line, telling apart lines that are skipped from malformed ones."""
    if not claude_line_has_signal(line):
        return ClaudeParseStatus.SKIPPED
    try:
        kind, session_id, timestamp_str, message = _decode(line)
    except (ValueError, _ShapeError):
        return ClaudeParseStatus.MALFORMED
    if kind != "assistant" or message is None or message["usage"] is None:
        return ClaudeParseStatus.SKIPPED
    usage = message["usage"]
    if sum(usage.values()) == 0:
        return ClaudeParseStatus.SKIPPED
    if not session_id or timestamp_str is None:
        return ClaudeParseStatus.MALFORMED
    try:
        timestamp = parse_rfc3339(timestamp_str)
    except ValueError:
        return ClaudeParseStatus.MALFORMED

    event = UsageEvent(
        source=Source.CLAUDE,
        timestamp=timestamp,
        session_id=session_id,
        project_path=project_path,
        model=message["model"] or "unknown",
        input_tokens=usage["input"],
        output_tokens=usage["output"],
        cache_read_tokens=usage["cache_read"],
        cache_write_tokens=usage["cache_write"],
        explicit_cost_usd=None,
    )
    return ClaudeParsed(event=event, message_id=message["id"])


def parse_claude_line(
    line: str, project_path: str | None = None
) -> ClaudeParsed | None:
    """Parse one line, returning None for anything that is not an event."""
    result = parse_claude_line_classified(line, project_path)
    return result if isinstance(result, ClaudeParsed) else None