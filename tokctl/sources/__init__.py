"""Parsers for Claude JSONL, Codex JSONL and Cursor CSV usage logs."""