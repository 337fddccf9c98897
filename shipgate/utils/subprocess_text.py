"""Text helpers for captured subprocess output."""

from __future__ import annotations

from typing import Any


def to_text(value: Any) -> str:
    """Decode captured output that may be bytes, str or None."""

    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def truncate_text(value: str, max_chars: int) -> str:
    """Keep the last max_chars characters of long output."""

    if max_chars <= 0 or len(value) <= max_chars:
        return value
    dropped = len(value) - max_chars
    return f"[... {dropped} characters truncated ...]\n" + value[-max_chars:]
