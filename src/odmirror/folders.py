#!/usr/bin/env python3
"""Creation of destination folder chains."""

import logging

import requests

from .exceptions import FolderCreationError, OneDriveError
from .onedrive_client import OneDriveClient
from .path_utils import join_remote, split_segments

logger = logging.getLogger(__name__)


class FolderEnsurer:
    """Makes sure every segment of a destination path exists as a folder."""

    def __init__(self, client: OneDriveClient):
        self.client = client

    def ensure(self, path: str) -> None:
        """Create every missing folder along ``path``.

        Segments are handled in order from the root. An existing folder is
        left alone; a missing one is created with conflict policy "fail".

        Args:
            path: Destination folder path, e.g. "/Backup/Photos"

        Raises:
            FolderCreationError: If a segment cannot be confirmed or created,
                including when a file already occupies its name
        """
        current = '/'
        for segment in split_segments(path):
            parent, current = current, join_remote(current, segment)
            if self._exists(current):
                continue

            try:
                self.client.create_folder(parent, segment)
            except (OneDriveError, requests.exceptions.RequestException) as e:
                status = getattr(e, 'status_code', None)
                # 409: another writer may have created it since the lookup
                if status == 409 and self._exists(current):
                    logger.debug(f"Folder appeared concurrently: {current}")
                    continue
                raise FolderCreationError(f"Cannot create folder {current}: {e}", status) from e

    def _exists(self, path: str) -> bool:
        try:
            item = self.client.get_item(path)
        except (OneDriveError, requests.exceptions.RequestException) as e:
            raise FolderCreationError(f"Cannot confirm folder {path}: {e}",
                                      getattr(e, 'status_code', None)) from e
        if item is None:
            return False
        if not item.is_folder:
            raise FolderCreationError(f"{path} exists and is not a folder", 409)
        logger.debug(f"Folder exists: {path}")
        return True
