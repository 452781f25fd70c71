from datetime import datetime, timezone

from tokctl.records import Source
from tokctl.sources.claude import (
    ClaudeParsed,
    ClaudeParseStatus,
    claude_line_has_signal,
    parse_claude_line,
    parse_claude_line_classified,
)

ASSISTANT_LINE = '{"type":"assistant","timestamp":"2026-04-18T09:00:05.000Z","sessionId":"sess-a","message":{"id":"m1","model":"claude-sonnet-4-6","role":"assistant","usage":{"input_tokens":100,"output_tokens":40,"cache_read_input_tokens":500,"cache_creation_input_tokens":200}}}'
USER_LINE = '{"type":"user","timestamp":"2026-04-18T09:00:00.000Z","sessionId":"sess-a","message":{"role":"user","content":"hello"}}'
ZERO_LINE = '{"type":"assistant","timestamp":"2026-04-18T09:00:05.000Z","sessionId":"sess-a","message":{"id":"m9","model":"claude-sonnet-4-6","role":"assistant","usage":{"input_tokens":0,"output_tokens":0,"cache_read_input_tokens":0,"cache_creation_input_tokens":0}}}'


def test_signal_filter_rejects_user_lines():
    assert not claude_line_has_signal(USER_LINE)
    assert claude_line_has_signal(ASSISTANT_LINE)


def test_parses_assistant_line():
    p = parse_claude_line(ASSISTANT_LINE, "my-proj")
    assert isinstance(p, ClaudeParsed)
    assert p.event.source is Source.CLAUDE
    assert p.event.session_id == "sess-a"
    assert p.event.model == "claude-sonnet-4-6"
    assert p.event.input_tokens == 100
    assert p.event.output_tokens == 40
    assert p.event.cache_read_tokens == 500
    assert p.event.cache_write_tokens == 200
    assert p.event.project_path == "my-proj"
    assert p.message_id == "m1"
    assert p.event.timestamp == datetime(2026, 4, 18, 9, 0, 5, tzinfo=timezone.utc)


def test_zero_token_line_returns_none():
    assert parse_claude_line(ZERO_LINE) is None
    assert parse_claude_line_classified(ZERO_LINE) is ClaudeParseStatus.SKIPPED


def test_user_line_returns_none():
    assert parse_claude_line(USER_LINE) is None
    assert parse_claude_line_classified(USER_LINE) is ClaudeParseStatus.SKIPPED


def test_malformed_json_returns_none():
    assert parse_claude_line("not valid json with usage and assistant") is None
    assert (
        parse_claude_line_classified('not valid json with "type":"assistant" and "usage"')
        is ClaudeParseStatus.MALFORMED
    )


def test_nested_assistant_progress_line_is_skipped():
    line = '{"type":"progress","data":{"message":{"type":"assistant","message":{"usage":{"input_tokens":1}}}}}'
    assert parse_claude_line_classified(line) is ClaudeParseStatus.SKIPPED


def test_missing_session_returns_none():
    line = '{"type":"assistant","timestamp":"2026-04-18T09:00:05.000Z","message":{"model":"claude-sonnet-4-6","usage":{"input_tokens":1}}}'
    assert parse_claude_line(line) is None
    assert parse_claude_line_classified(line) is ClaudeParseStatus.MALFORMED


def test_bad_timestamp_is_malformed():
    line = ASSISTANT_LINE.replace("2026-04-18T09:00:05.000Z", "yesterday")
    assert parse_claude_line_classified(line) is ClaudeParseStatus.MALFORMED


def test_missing_model_defaults_to_unknown():
    line = ASSISTANT_LINE.replace('"model":"claude-sonnet-4-6",', "")
    p = parse_claude_line(line)
    assert p is not None and p.event.model == "unknown"
    assert p.event.project_path is None


def test_unknown_fields_are_ignored():
    line = '{"type":"assistant","timestamp":"2026-04-18T09:00:05.000Z","sessionId":"sess-a","brandNewFieldFromFuture":42,"message":{"id":"m1","model":"claude-sonnet-4-6","role":"assistant","somethingNew":"ok","usage":{"input_tokens":100,"output_tokens":40,"cache_read_input_tokens":0,"cache_creation_input_tokens":0,"new_token_type":99}}}'
    p = parse_claude_line(line)
    assert p is not None
    assert p.event.input_tokens == 100