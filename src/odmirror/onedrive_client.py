#!/usr/bin/env python3
"""OneDrive API client for ODMirror."""

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from .exceptions import OneDriveError
from .models import RemoteFile, RemoteFolder, RemoteItem, parse_item
from .path_utils import item_endpoint, join_remote, parent_of
from .retry import retry_on_failure
from .transport import DriveTransport


logger = logging.getLogger(__name__)


def _error_detail(response: requests.Response) -> str:
    """Best-effort extraction of the provider error message."""
    try:
        error = response.json().get('error', {})
        return f"{error.get('code', 'unknown')}: {error.get('message', '')}".strip()
    except (ValueError, AttributeError):
        return response.text[:200]


class OneDriveClient:
    """Client for one OneDrive account, addressed by path."""

    def __init__(self, transport: DriveTransport, name: str = 'drive'):
        """Initialize OneDrive client.

        Args:
            transport: Authenticated transport for the account
            name: Account label used in log messages
        """
        self.transport = transport
        self.name = name

    def __repr__(self) -> str:
        return f"OneDriveClient({self.name!r})"

    def iter_children(self, path: str = "/") -> Iterator[RemoteItem]:
        """Iterate the children of a remote folder, following pagination.

        Pages are fetched lazily in provider order. A failing request ends
        the listing: callers cannot tell "missing folder" from "empty folder".

        Args:
            path: Folder path (default: root)

        Yields:
            RemoteItem for every child

        Raises:
            SecurityError: If a continuation link leaves the API host
        """
        url = self.transport.url_for(item_endpoint(path, 'children'))
        count = 0

        while url:
            try:
                response = self.transport.request('GET', url)
            except (OneDriveError, requests.exceptions.RequestException) as e:
                logger.warning(f"[{self.name}] Listing {path} failed: {e}")
                return

            if response.status_code >= 400:
                logger.warning(f"[{self.name}] Listing {path} returned {response.status_code}: "
                               f"{_error_detail(response)}")
                return

            try:
                data = response.json()
            except ValueError as e:
                logger.warning(f"[{self.name}] Listing {path} returned invalid JSON: {e}")
                return

            for record in data.get('value', []):
                try:
                    item = parse_item(record, path)
                except (ValueError, TypeError) as e:
                    logger.warning(f"[{self.name}] Skipping malformed item in {path}: {e}")
                    continue
                count += 1
                yield item

            next_link = data.get('@odata.nextLink')
            url = self.transport.check_api_url(next_link) if next_link else None
            if url:
                logger.debug(f"[{self.name}] Following pagination link, fetched {count} items so far")

        logger.debug(f"[{self.name}] Listed {count} items from {path}")

    def list_children(self, path: str = "/") -> List[RemoteItem]:
        """List the children of a remote folder as one ordered list."""
        return list(self.iter_children(path))

    @retry_on_failure(max_retries=3)
    def get_item(self, path: str) -> Optional[RemoteItem]:
        """Get item metadata by path.

        Args:
            path: Remote item path

        Returns:
            The item, or None if nothing exists at that path

        Raises:
            OneDriveError: If existence cannot be determined
        """
        response = self.transport.api('GET', item_endpoint(path))
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise OneDriveError(
                f"[{self.name}] Cannot read {path}: {_error_detail(response)}",
                response.status_code,
            )
        try:
            record = response.json()
            # The drive root has no name of its own
            record.setdefault('name', path.rstrip('/').rsplit('/', 1)[-1] or 'root')
            return parse_item(record, parent_of(path))
        except ValueError as e:
            raise OneDriveError(f"[{self.name}] Invalid metadata for {path}: {e}")

    def create_folder(self, parent: str, name: str) -> RemoteFolder:
        """Create a folder, failing if the name is already taken.

        Args:
            parent: Existing parent folder path
            name: New folder name

        Returns:
            Metadata of the created folder

        Raises:
            OneDriveError: If the folder could not be created (409 on conflict)
        """
        data = {
            "name": name,
            "folder": {},
            "@name.conflictBehavior": "fail",
        }
        response = self.transport.api('POST', item_endpoint(parent, 'children'), json=data)
        if response.status_code >= 400:
            raise OneDriveError(
                f"[{self.name}] Cannot create folder {join_remote(parent, name)}: "
                f"{_error_detail(response)}",
                response.status_code,
            )
        logger.info(f"[{self.name}] Created folder: {join_remote(parent, name)}")
        try:
            item = parse_item(response.json(), parent)
        except ValueError:
            item = None
        if isinstance(item, RemoteFolder):
            return item
        return RemoteFolder(name=name, child_count=0, parent_path=parent)

    def open_download(self, item: RemoteFile, offset: int = 0) -> requests.Response:
        """Open a streamed download of a file, optionally from a byte offset.

        A resumed download asks for fresh metadata first because the download
        link captured at listing time may already have expired.

        Args:
            item: File to download
            offset: First byte to fetch

        Returns:
            Streaming response; the caller must close it

        Raises:
            OneDriveError: If the content cannot be opened from that offset
        """
        if offset == 0:
            response = self.transport.api('GET', item_endpoint(item.item_path, 'content'), stream=True)
            if response.status_code >= 400:
                response.close()
                raise OneDriveError(
                    f"[{self.name}] Cannot download {item.item_path}: status {response.status_code}",
                    response.status_code,
                )
            return response

        fresh = self.get_item(item.item_path)
        if not isinstance(fresh, RemoteFile) or not fresh.download_url:
            raise OneDriveError(f"[{self.name}] No download link for {item.item_path}")

        headers = {'Range': f"bytes={offset}-{item.size - 1}"}
        response = self.transport.request('GET', fresh.download_url, authenticated=False,
                                          headers=headers, stream=True)
        if response.status_code != 206:
            response.close()
            raise OneDriveError(
                f"[{self.name}] Range request for {item.item_path} from {offset} "
                f"returned {response.status_code}",
                response.status_code,
            )
        return response

    def create_upload_session(self, dest_folder: str, name: str) -> str:
        """Open a resumable upload session for ``dest_folder/name``.

        Returns:
            The session upload URL (empty if the provider returned none)

        Raises:
            OneDriveError: If the provider refuses the session
        """
        endpoint = item_endpoint(join_remote(dest_folder, name), 'upload.createSession')
        response = self.transport.api('POST', endpoint, headers={'Content-Type': 'application/json'})
        if response.status_code >= 400:
            raise OneDriveError(
                f"[{self.name}] Cannot create upload session for {name}: {_error_detail(response)}",
                response.status_code,
            )
        try:
            return response.json().get('uploadUrl') or ''
        except ValueError:
            return ''

    def put_chunk(self, upload_url: str, data: bytes, start: int, total: int) -> requests.Response:
        """Send one chunk to an upload session.

        The upload URL is pre-authenticated, so no bearer header is sent.
        """
        headers = {
            'Content-Length': str(len(data)),
            'Content-Range': f"bytes {start}-{start + len(data) - 1}/{total}",
        }
        response = self.transport.request('PUT', upload_url, authenticated=False,
                                          headers=headers, data=data)
        response.close()
        return response

    def get_upload_status(self, upload_url: str) -> Dict[str, Any]:
        """Query an upload session for the ranges it still expects.

        Raises:
            OneDriveError: If the session cannot be read
        """
        response = self.transport.request('GET', upload_url, authenticated=False)
        if response.status_code >= 400:
            raise OneDriveError(
                f"[{self.name}] Upload session status returned {response.status_code}",
                response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise OneDriveError(f"[{self.name}] Upload session status is not JSON: {e}")

    def put_content(self, dest_folder: str, name: str, data: bytes = b'') -> Dict[str, Any]:
        """Upload a small file in one request.

        Returns:
            Metadata of the uploaded file

        Raises:
            OneDriveError: If the upload is rejected
        """
        endpoint = item_endpoint(join_remote(dest_folder, name), 'content')
        headers = {'Content-Type': 'application/octet-stream'}
        response = self.transport.api('PUT', endpoint, data=data, headers=headers)
        if response.status_code >= 400:
            raise OneDriveError(
                f"[{self.name}] Upload of {name} rejected: {_error_detail(response)}",
                response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            return {}
