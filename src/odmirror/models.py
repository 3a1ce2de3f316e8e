#!/usr/bin/env python3
"""Typed records for remote drive items and upload jobs."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union, TYPE_CHECKING

from .path_utils import join_remote, normalize_remote_path, sanitize_parent_reference

if TYPE_CHECKING:
    from .onedrive_client import OneDriveClient


@dataclass(frozen=True)
class RemoteFile:
    """A file entry from a listing.

    The download URL is pre-authenticated and short-lived; it is only valid
    until the provider expires it.
    """

    name: str
    size: int
    parent_path: str
    download_url: Optional[str] = None
    content_hash: Optional[str] = None
    modified: Optional[str] = None

    is_folder = False

    @property
    def item_path(self) -> str:
        """Remote path of the file itself."""
        return join_remote(self.parent_path, self.name)


@dataclass(frozen=True)
class RemoteFolder:
    """A folder entry from a listing."""

    name: str
    child_count: int
    parent_path: str

    is_folder = True

    @property
    def item_path(self) -> str:
        """Remote path of the folder itself."""
        return join_remote(self.parent_path, self.name)


RemoteItem = Union[RemoteFile, RemoteFolder]


def parse_item(record: Dict[str, Any], parent: Optional[str] = None) -> RemoteItem:
    """Build a RemoteItem from one OneDrive item record.

    A record is a folder when it carries ``folder.childCount``; everything
    else is treated as a file. The folder path the caller asked about is
    preferred over ``parentReference.path``, which the provider reports
    percent-encoded and prefixed.

    Args:
        record: Item JSON as returned by the API
        parent: Path of the folder the record was listed from, if known

    Returns:
        RemoteFile or RemoteFolder

    Raises:
        ValueError: If the record has no name
    """
    name = record.get('name')
    if not isinstance(name, str) or not name:
        raise ValueError(f"Item record without a name: {record!r}")

    if parent is not None:
        parent_path = normalize_remote_path(parent)
    else:
        raw_parent = (record.get('parentReference') or {}).get('path')
        parent_path = sanitize_parent_reference(raw_parent) if raw_parent else '/'

    folder = record.get('folder')
    if isinstance(folder, dict) and folder.get('childCount') is not None:
        return RemoteFolder(
            name=name,
            child_count=int(folder['childCount']),
            parent_path=parent_path,
        )

    hashes = (record.get('file') or {}).get('hashes') or {}
    return RemoteFile(
        name=name,
        size=int(record.get('size') or 0),
        parent_path=parent_path,
        download_url=record.get('@content.downloadUrl'),
        content_hash=hashes.get('sha1Hash') or None,
        modified=record.get('lastModifiedDateTime'),
    )


@dataclass(frozen=True)
class SyncJob:
    """One queued file upload.

    Attributes:
        item: Source file to copy
        dest_folder: Destination folder path the file is uploaded into
        destination: Client for the destination account
    """

    item: RemoteFile
    dest_folder: str
    destination: 'OneDriveClient'

    @property
    def dest_path(self) -> str:
        return join_remote(self.dest_folder, self.item.name)
