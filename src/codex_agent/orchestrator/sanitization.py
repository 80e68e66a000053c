"""Sanitization helpers for captured terminal output."""

from __future__ import annotations

import re

_REPLACEMENTS: tuple[tuple[re.Pattern[str], str], ...] = (
    # OSC: ESC ] ... BEL or ESC \
    (re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"), ""),
    # CSI: ESC [ params letter
    (re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]"), ""),
    # charset switches: ESC ( B, ESC ) 0
    (re.compile(r"\x1b[()][AB012]"), ""),
    (re.compile(r"\x1b[@-Z\\-_]"), ""),
    (re.compile(r"\r\n?"), "\n"),
    # control chars other than \t and \n
    (re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]"), ""),
    (re.compile(r"[\ufffd\ufffe\uffff]"), " "),
)


def sanitize_output(text: str) -> str:
    """Strip ANSI escapes and control characters from pane output."""

    cleaned = text
    for pattern, replacement in _REPLACEMENTS:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned
