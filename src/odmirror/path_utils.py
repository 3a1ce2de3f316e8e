#!/usr/bin/env python3
"""Path utilities for remote OneDrive paths in ODMirror."""

import logging
from typing import List
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

ROOT_PREFIXES = ('/drive/root:', '/drive/root')


class SecurityError(Exception):
    """Raised when a security violation is detected."""
    pass


def split_segments(path: str) -> List[str]:
    """Split a remote path into its non-empty segments.

    Args:
        path: Remote path such as "/Backup/Photos"

    Returns:
        Ordered list of segments, e.g. ["Backup", "Photos"]

    Raises:
        SecurityError: If path contains traversal components
    """
    segments = []
    for part in path.replace('\\', '/').split('/'):
        if part in ('', '.'):
            continue
        if part == '..':
            raise SecurityError(f"Path traversal detected: {path}")
        segments.append(part)
    return segments


def normalize_remote_path(path: str) -> str:
    """Normalize a remote path to the "/a/b" form ("/" for the root)."""
    return '/' + '/'.join(split_segments(path))


def join_remote(parent: str, name: str) -> str:
    """Join a remote folder path and a child name."""
    parent = normalize_remote_path(parent)
    if parent == '/':
        return normalize_remote_path(name)
    return normalize_remote_path(f"{parent}/{name}")


def sanitize_parent_reference(raw_path: str) -> str:
    """Extract the remote path from a provider ``parentReference.path``.

    The provider reports parents percent-encoded and prefixed, e.g.
    "/drive/root:/My%20Photos/2020" for the folder "/My Photos/2020".

    Args:
        raw_path: Raw path from the OneDrive API

    Returns:
        Normalized remote path
    """
    path = raw_path or ''
    for prefix in ROOT_PREFIXES:
        if path.startswith(prefix):
            path = path[len(prefix):]
            break
    path = unquote(path)
    try:
        return normalize_remote_path(path)
    except SecurityError:
        logger.warning(f"Blocked dangerous parent reference: {raw_path}")
        return '/'


def item_endpoint(path: str, suffix: str = '') -> str:
    """Build the path-addressed API endpoint for a remote item.

    Args:
        path: Remote item path
        suffix: Optional action such as "children" or "content"

    Returns:
        Endpoint like "/drive/root:/Photos:/children" or "/drive/root/children"
    """
    path = quote(normalize_remote_path(path), safe='/')
    if path == '/':
        return f"/drive/root/{suffix}" if suffix else "/drive/root"
    if suffix:
        return f"/drive/root:{path}:/{suffix}"
    return f"/drive/root:{path}"


def parent_of(path: str) -> str:
    """Return the parent folder of a remote path ("/" for top-level items)."""
    segments = split_segments(path)
    return '/' + '/'.join(segments[:-1])
