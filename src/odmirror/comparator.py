#!/usr/bin/env python3
"""Decides whether a source file already exists at the destination."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .models import RemoteFile, RemoteItem


class SyncAction(str, Enum):
    """Actions the tree differ can choose for a source file."""

    UPLOAD = "upload"
    """Copy the file to the destination"""

    SKIP = "skip"
    """Destination already holds the same file"""


@dataclass
class SyncDecision:
    """Represents a decision about one source file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    match: Optional[RemoteFile] = None
    """Destination file that was compared against (if any)"""


def hashes_match(source: RemoteFile, dest: RemoteFile) -> Optional[bool]:
    """Compare content hashes.

    Returns:
        True or False when both sides carry a hash, None when either is missing
    """
    if not source.content_hash or not dest.content_hash:
        return None
    return source.content_hash.lower() == dest.content_hash.lower()


def compare(source: RemoteFile, dest_items: Iterable[RemoteItem]) -> SyncDecision:
    """Decide whether ``source`` must be uploaded into a destination folder.

    A destination file with the same name and size is a candidate. When both
    sides carry a content hash the hashes decide; without one, name and size
    alone count as synced. Empty files are compared like any other.

    Args:
        source: Source file
        dest_items: Current listing of the destination folder

    Returns:
        SyncDecision
    """
    mismatch = None
    for dest in dest_items:
        if dest.is_folder or dest.name != source.name:
            continue
        if dest.size != source.size:
            return SyncDecision(
                SyncAction.UPLOAD,
                f"size differs ({source.size} != {dest.size})",
                dest,
            )

        same = hashes_match(source, dest)
        if same is None:
            return SyncDecision(SyncAction.SKIP, "name and size match (no hash to compare)", dest)
        if same:
            return SyncDecision(SyncAction.SKIP, "name, size and content hash match", dest)
        mismatch = dest

    if mismatch is not None:
        return SyncDecision(SyncAction.UPLOAD, "content hash differs", mismatch)
    return SyncDecision(SyncAction.UPLOAD, "missing at destination")
