#!/usr/bin/env python3
"""Small formatting helpers for ODMirror status output."""


def format_size(size: int) -> str:
    """Format a byte count for status lines (e.g. "10.0 MB")."""
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    else:
        return f"{size / (1024 * 1024 * 1024):.2f} GB"
