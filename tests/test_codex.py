from datetime import datetime, timezone

from tokctl.records import Source, UsageEvent
from tokctl.sources.codex import (
    CodexCtx,
    CodexStatus,
    codex_line_has_signal,
    parse_codex_line,
)

SESS_META = '{"timestamp":"2026-04-20T12:49:04.848Z","type":"session_meta","payload":{"id":"sess-x","cwd":"/Users/dev/repo","originator":"Codex Desktop"}}'
TURN_CTX = '{"timestamp":"2026-04-20T12:49:05.000Z","type":"turn_context","payload":{"model":"gpt-5.4","cwd":"/Users/dev/repo"}}'
TOKEN_COUNT = '{"timestamp":"2026-04-20T12:49:10.000Z","type":"event_msg","payload":{"type":"token_count","info":{"last_token_usage":{"input_tokens":200,"cached_input_tokens":50,"output_tokens":60,"reasoning_output_tokens":10,"total_tokens":320}}}}'


def _ready_ctx():
    return CodexCtx(session_id="s", current_model="gpt-5.4")


def test_signal_filter_rejects_unrelated_lines():
    assert not codex_line_has_signal('{"type":"other","foo":1}')
    assert codex_line_has_signal(SESS_META)
    assert codex_line_has_signal(TOKEN_COUNT)


def test_full_sequence_produces_event():
    ctx = CodexCtx()
    assert parse_codex_line(SESS_META, ctx) is CodexStatus.CONTEXT_UPDATED
    assert ctx.session_id == "sess-x"
    assert ctx.project_path == "/Users/dev/repo"

    assert parse_codex_line(TURN_CTX, ctx) is CodexStatus.CONTEXT_UPDATED
    assert ctx.current_model == "gpt-5.4"

    ev = parse_codex_line(TOKEN_COUNT, ctx)
    assert isinstance(ev, UsageEvent)
    assert ev.source is Source.CODEX
    assert ev.session_id == "sess-x"
    assert ev.model == "gpt-5.4"
    assert ev.input_tokens == 150
    assert ev.output_tokens == 60
    assert ev.cache_read_tokens == 50
    assert ev.cache_write_tokens == 0
    assert ev.project_path == "/Users/dev/repo"
    assert ev.timestamp == datetime(2026, 4, 20, 12, 49, 10, tzinfo=timezone.utc)


def test_token_count_without_session_is_skipped():
    assert parse_codex_line(TOKEN_COUNT, CodexCtx()) is CodexStatus.SKIPPED


def test_zero_token_line_is_skipped():
    zero = '{"timestamp":"2026-04-20T12:49:10.000Z","type":"event_msg","payload":{"type":"token_count","info":{"last_token_usage":{"input_tokens":0,"output_tokens":0,"cached_input_tokens":0,"reasoning_output_tokens":0}}}}'
    assert parse_codex_line(zero, _ready_ctx()) is CodexStatus.SKIPPED


def test_token_count_without_info_is_skipped():
    line = '{"timestamp":"2026-04-20T12:49:10.000Z","type":"event_msg","payload":{"type":"token_count","info":null}}'
    assert parse_codex_line(line, _ready_ctx()) is CodexStatus.SKIPPED


def test_malformed_json_returns_none():
    assert parse_codex_line("not json but token_count hint", CodexCtx()) is None
    assert parse_codex_line('{"type":"session_meta", broken', CodexCtx()) is None


def test_other_event_msg_returns_none():
    line = '{"timestamp":"2026-04-20T12:49:10.000Z","type":"event_msg","payload":{"type":"agent_message","note":"token_count"}}'
    assert parse_codex_line(line, _ready_ctx()) is None


def test_missing_model_defaults_to_unknown():
    ctx = CodexCtx(session_id="s")
    ev = parse_codex_line(TOKEN_COUNT, ctx)
    assert isinstance(ev, UsageEvent)
    assert ev.model == "unknown"


def test_unknown_fields_ignored():
    line = '{"timestamp":"2026-04-20T12:49:10.000Z","type":"event_msg","newField":7,"payload":{"type":"token_count","futuristicField":true,"info":{"last_token_usage":{"input_tokens":50,"cached_input_tokens":0,"output_tokens":25,"reasoning_output_tokens":0,"total_tokens":75,"new_t":9}}}}'
    ev = parse_codex_line(line, _ready_ctx())
    assert isinstance(ev, UsageEvent)
    assert ev.input_tokens == 50


def test_reasoning_tokens_are_not_added_to_output_twice():
    line = '{"timestamp":"2026-04-22T10:59:50.068Z","type":"event_msg","payload":{"type":"token_count","info":{"last_token_usage":{"input_tokens":22443,"cached_input_tokens":4480,"output_tokens":650,"reasoning_output_tokens":516,"total_tokens":23093}}}}'
    ev = parse_codex_line(line, _ready_ctx())
    assert isinstance(ev, UsageEvent)
    assert ev.input_tokens == 17_963
    assert ev.output_tokens == 650
    assert ev.cache_read_tokens == 4_480