"""Parser for Cursor usage CSV exports."""

from __future__ import annotations

import csv
import hashlib
import io
import os
import re
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from tokctl.records import Source, UsageEvent, parse_rfc3339

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)
_UINT = re.compile(r"\+?\d+", re.ASCII)
_NAIVE_DATETIME = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d{3}))?Z?", re.ASCII
)
_DATE_ONLY = re.compile(r"(\d{4})-(\d{2})-(\d{2})", re.ASCII)


class _RowOutcome(Enum):
    SKIPPED = "skipped"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class _Columns:
    date: int
    model: int
    input_with_cache_write: int
    input_without_cache_write: int
    cache_read: int
    output_tokens: int
    cost: int | None

    @classmethod
    def from_header(cls, fields: list[str]) -> _Columns | None:
        normalized = [_normalize_header(f) for f in fields]

        def find(name: str) -> int | None:
            try:
                return normalized.index(name)
            except ValueError:
                return None

        required = {
            "date": find("date"),
            "model": find("model"),
            "input_with_cache_write": find("input (w/ cache write)"),
            "input_without_cache_write": find("input (w/o cache write)"),
            "cache_read": find("cache read"),
            "output_tokens": find("output tokens"),
        }
        if any(idx is None for idx in required.values()):
            return None
        return cls(cost=find("cost"), **required)


def _normalize_header(value: str) -> str:
    return value.strip().strip('"').translate(_ASCII_LOWER)


def _is_text(field: str) -> bool:
    try:
        field.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _session_prefix(path: Path) -> str:
    try:
        stable = Path(os.path.realpath(path, strict=True)) if hasattr(os.path, "ALLOW_MISSING") else path.resolve(strict=True)
    except OSError:
        stable = path
    digest = hashlib.sha256(str(stable).encode("utf-8", errors="surrogateescape")).hexdigest()
    stem = path.stem or "cursor"
    return f"{stem}-{digest[:12]}"


def _field(fields: list[str], idx: int) -> str | None:
    return fields[idx].strip() if idx < len(fields) else None


def _parse_uint(raw: str) -> int:
    cleaned = raw.strip().strip('"').replace(",", "")
    if not _UINT.fullmatch(cleaned):
        return 0
    value = int(cleaned)
    return value if value < 2**64 else 0


def parse_cost(raw: str) -> float | None:
    """Parse a cost cell such as ``$1,234.56``; placeholders count as zero."""
    cleaned = raw.strip().strip('"').replace("$", "").replace(",", "")
    if cleaned == "" or cleaned.lower() in ("nan", "included") or cleaned == "-":
        return 0.0
    if "_" in cleaned or any(c.isspace() for c in cleaned):
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_cursor_timestamp(raw: str) -> datetime | None:
    """Parse a Cursor date cell into UTC; bare dates land at noon."""
    raw = raw.strip().strip('"')
    if not raw:
        return None
    try:
        return parse_rfc3339(raw)
    except ValueError:
        pass
    try:
        match = _NAIVE_DATETIME.fullmatch(raw)
        if match:
            year, month, day, hour, minute, second, frac = match.groups()
            return datetime(
                int(year), int(month), int(day), int(hour), int(minute), int(second),
                int(frac or "0") * 1000, tzinfo=timezone.utc,
            )
        match = _DATE_ONLY.fullmatch(raw)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return datetime(year, month, day, 12, tzinfo=timezone.utc)
    except ValueError:
        return None
    return None


def _parse_row(
    fields: list[str], columns: _Columns, prefix: str, row_idx: int
) -> UsageEvent | _RowOutcome:
    model = _field(fields, columns.model)
    if model is None:
        return _RowOutcome.MALFORMED
    if not model:
        return _RowOutcome.SKIPPED
    timestamp_raw = _field(fields, columns.date)
    if timestamp_raw is None:
        return _RowOutcome.MALFORMED
    timestamp = parse_cursor_timestamp(timestamp_raw)
    if timestamp is None:
        return _RowOutcome.MALFORMED
    raws = [
        _field(fields, idx)
        for idx in (
            columns.input_with_cache_write,
            columns.input_without_cache_write,
            columns.cache_read,
            columns.output_tokens,
        )
    ]
    if any(r is None for r in raws):
        return _RowOutcome.MALFORMED
    with_write, without_write, cache_read, output = (_parse_uint(r) for r in raws)

    explicit_cost = None
    if columns.cost is not None:
        cost_raw = _field(fields, columns.cost)
        if cost_raw is not None:
            explicit_cost = parse_cost(cost_raw)

    event = UsageEvent(
        source=Source.CURSOR,
        timestamp=timestamp,
        session_id=f"{prefix}-{row_idx}",
        project_path=None,
        model=model,
        input_tokens=without_write,
        output_tokens=output,
        cache_read_tokens=cache_read,
        cache_write_tokens=max(0, with_write - without_write),
        explicit_cost_usd=explicit_cost,
    )
    if event.total_tokens == 0 and (explicit_cost or 0.0) == 0.0:
        return _RowOutcome.SKIPPED
    return event


def _records(text: str):
    """Yield non-blank records, or None where a record could not be read."""
    reader = csv.reader(io.StringIO(text, newline=""))
    while True:
        try:
            record = next(reader)
        except StopIteration:
            return
        except csv.Error:
            yield None
            continue
        if record:
            yield record


def parse_cursor_csv(path: str | os.PathLike) -> tuple[list[UsageEvent], int]:
    """Parse a Cursor usage export.

    Returns the events and the number of rows that could not be parsed.
    A file without the expected columns yields no events and no skips.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError:
        return [], 1
    text = data.decode("utf-8", errors="surrogateescape")
    if text.startswith("\ufeff"):
        text = text[1:]

    records = _records(text)
    header = next(records, [])
    if header is None or not all(_is_text(f) for f in header):
        return [], 1
    columns = _Columns.from_header(header)
    if columns is None:
        return [], 0

    prefix = _session_prefix(path)
    events: list[UsageEvent] = []
    skipped = 0
    for row_idx, fields in enumerate(records, start=1):
        if fields is None or not all(_is_text(f) for f in fields):
            skipped += 1
            continue
        if all(not f.strip() for f in fields):
            continue
        outcome = _parse_row(fields, columns, prefix, row_idx)
        if isinstance(outcome, UsageEvent):
            events.append(outcome)
        elif outcome is _RowOutcome.MALFORMED:
            skipped += 1
    return events, skipped