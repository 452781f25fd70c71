"""Token usage and cost reporting for local Claude, Codex and Cursor logs."""

__version__ = "0.1.0"