"""Core record types shared by the parsers, the store and the renderers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

NO_REPO_SENTINEL = "<NO_REPO>"
"""Key used for the bucket of events that resolved to no repository."""


class Source(str, Enum):
    """Tool that produced a usage event."""

    CLAUDE = "claude"
    CODEX = "codex"
    CURSOR = "cursor"

    def __str__(self) -> str:
        return self.value


class ReportKind(str, Enum):
    """Grouping used by a report."""

    DAILY = "daily"
    MONTHLY = "monthly"
    SESSION = "session"

    def __str__(self) -> str:
        return self.value


@dataclass
class UsageEvent:
    """One billable turn reported by a source."""

    source: Source
    timestamp: datetime
    session_id: str
    project_path: str | None
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    explicit_cost_usd: float | None = None

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )


@dataclass
class AggregateRow:
    """A report row summed over a day, month or session.

    ``source`` is ``None`` when the row covers every source.
    """

    key: str
    source: Source | None = None
    project_path: str | None = None
    latest_timestamp: datetime | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def source_label(self) -> str:
        return "all" if self.source is None else self.source.value


@dataclass
class RepoAggregateRow:
    """A report row summed over one repository (or the no-repo bucket)."""

    key: str
    display_name: str
    origin_url: str | None
    sessions: int
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int
    cache_write_tokens: int
    total_tokens: int
    cost_usd: float
    latest_timestamp: datetime

    def is_no_repo(self) -> bool:
        return self.key == NO_REPO_SENTINEL


_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))",
    re.ASCII,
)


def parse_rfc3339(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Raises ValueError when the text is not a valid timestamp with an offset.
    """
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {text!r}")
    year, month, day, hour, minute, second, frac, zulu, sign, off_h, off_m = (
        match.groups()
    )
    micro = int((frac or "").ljust(6, "0")[:6])
    if zulu:
        tz = timezone.utc
    else:
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        if sign == "-":
            offset = -offset
        tz = timezone(offset)
    value = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro,
        tzinfo=tz,
    )
    return value.astimezone(timezone.utc)