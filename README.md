# tokctl

A local-only Python library for working out how many tokens you have used, and
what they cost, across Claude, Codex and Cursor usage logs. Nothing leaves your
machine, and it needs nothing beyond the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## What it does

### Parsing logs

All parsers produce `tokctl.records.UsageEvent` values. Each one records the
source, a UTC timestamp, the session id, the project path, the model and the
input, output, cache-read and cache-write token counts.

- `tokctl.sources.claude` reads Claude JSONL lines.
  - `claude_line_has_signal` is a cheap pre-filter.
  - `parse_claude_line` returns a `ClaudeParsed` (the event plus the message
    id) or `None`.
  - `parse_claude_line_classified` returns either a `ClaudeParsed` or a
    `ClaudeParseStatus`. The status tells apart lines that are simply skipped
    from lines that are malformed.
- `tokctl.sources.codex` reads Codex JSONL rows. `parse_codex_line(line, ctx)`
  does the following:
  - It updates a `CodexCtx` from `session_meta` and `turn_context` rows.
  - For an emittable `token_count` row it returns a `UsageEvent`, with cached
    input counted as cache reads rather than input.
  - For recognised rows that emit nothing it returns a `CodexStatus`.
  - For anything else it returns `None`.
- `tokctl.sources.cursor` reads Cursor CSV exports.
  - `parse_cursor_csv(path)` returns the events and the number of rows that
    could not be parsed.
  - Rows get synthetic session ids built from the file name and a hash of its
    path.
  - `parse_cursor_timestamp` and `parse_cost` parse single cells. A date with
    no time lands at noon UTC. "Included", "-" and an empty cost count as 0.

### Resolving repositories

`tokctl.repo.resolve_path` maps a project path to a `RepoIdentity`. The
identity holds a `key`, which is the canonical path of the nearest `.git`
ancestor or `None`, a `display_name`, and the `origin` remote URL if there is
one. Resolution handles:

- Claude's dash-encoded folder names, including repository names that contain
  hyphens.
- Git worktrees, which are mapped back to the main checkout.

`Resolver` memoizes lookups, and `resolved_repos()` lists the identities that
found a repository. `project_basename` and `parse_origin_url` are small helpers
used along the way.

### Caching in SQLite

- `tokctl.store.db.open_store(path)` opens the cache. It creates the
  directories and the schema as needed. On the way it handles older caches:
  - A version-2 cache is migrated in place, with repositories backfilled.
  - Older caches are rebuilt.
  - A cache written with a newer schema raises `NewerSchemaError`.
- `cache_path()` gives the default location; see below.
- `tokctl.store.writes` writes `FileManifestRow`, `EventRow` and `RepoRow`
  records with these functions:
  - `upsert_file_manifest` and `load_file_manifest` for the file manifest.
  - `upsert_repo`, which keeps `first_seen` on conflict.
  - `insert_events` and `delete_file_and_events`.

  These functions do not commit, so call `conn.commit()` yourself.
- `tokctl.store.queries` reports from the cache:
  - `daily_report` and `monthly_report` give totals per day or month, oldest
    first.
  - `session_report` gives totals per (source, session), most recent first.
  - `repo_report` gives totals per repository, most expensive first.
  - A `QueryFilter` narrows any of them by source, time range in milliseconds,
    or repository.
  - `resolve_repo_filter(conn, name)` turns a name into a `RepoFilterSpec`.
    `(no-repo)` selects events with no repository, a value starting with `/` is
    a key prefix, and anything else is a display name. A display name shared
    by several repositories raises `AmbiguousRepoError`.

### Rendering

`tokctl.render` renders report rows:

- `render_table` and `render_repo_table` draw box tables with a TOTAL row.
- `render_json` and `render_repo_json` produce pretty-printed JSON, with costs
  rounded to four decimals.
- `render_warnings` builds the warning lines for unpriced models and skipped
  lines.

In every repository view the `(no-repo)` bucket sorts last.

`tokctl.formatting` provides the display helpers `fmt_num`, `fmt_cost`,
`fmt_tokens_short` and `relative_time`.

## Example

```python
from tokctl.sources.claude import parse_claude_line

line = (
    '{"type":"assistant","timestamp":"2026-04-18T09:00:05.000Z",'
    '"sessionId":"sess-a","message":{"id":"m1","model":"claude-sonnet-4-6",'
    '"usage":{"input_tokens":100,"output_tokens":40}}}'
)
parsed = parse_claude_line(line, "my-project")
print(parsed.event.input_tokens, parsed.event.model)
```

A report straight from the cache:

```python
from tokctl.records import ReportKind
from tokctl.render import render_table
from tokctl.store.db import cache_path, open_store
from tokctl.store.queries import QueryFilter, daily_report

conn = open_store(cache_path())
rows = daily_report(conn, QueryFilter())
print(render_table(rows, ReportKind.DAILY, False))
```

## Cache location

The cache file is `cache.db`. Its directory is chosen in this order:

1. `TOKCTL_CACHE_DIR`, if set.
2. `$XDG_DATA_HOME/tokctl`, if `XDG_DATA_HOME` is set.
3. `~/.local/share/tokctl`, falling back to `/tmp` when `HOME` is unset.

## What it does not do

This package is a library. It has no command-line program and no interactive
screen. It also does not do the following:

- It does not find log files on disk.
- It does not ingest them into the cache by itself. Parse the files, build
  `EventRow` records and insert them with `tokctl.store.writes`.
- It holds no model price table. Each event's cost must be worked out by the
  caller and stored in `EventRow.cost_usd`. Cursor exports carry their own
  cost in `UsageEvent.explicit_cost_usd`.