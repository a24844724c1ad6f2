"""Allocation size checks and human-readable byte formatting."""

from __future__ import annotations

_UNITS = ("Bytes", "KB", "MB", "GB", "TB", "PB")


def accepts(size: int, min_size: int, max_size: int) -> bool:
    """True iff min_size <= size <= max_size (inclusive on both ends)."""
    return min_size <= size <= max_size


def format_bytes(num: int) -> str:
    """Render a byte count with binary (1024) units, e.g. ``1.5 KB``."""
    if num <= 0:
        return "0 Bytes"
    i = 0
    while i < len(_UNITS) - 1 and num >= 1024 ** (i + 1):
        i += 1
    return f"{round(num / 1024 ** i, 2):g} {_UNITS[i]}"
