#!/usr/bin/env python3
"""Chunked, resumable copying of one file into an upload session.

The source file is streamed from the source account and pushed to the
destination account in fixed-size chunks. When a chunk is rejected or the
source stream breaks, the session itself is asked which byte it expects
next, and the source is re-opened with a range request from that byte.
Nothing about a session is kept locally beyond its URL.
"""

import logging
import re
from typing import Any, Dict, Optional

import requests

from .exceptions import OneDriveError
from .models import SyncJob
from .onedrive_client import OneDriveClient
from .utils import format_size

logger = logging.getLogger(__name__)

# Fragments must be multiples of 320 KiB
CHUNK_UNIT = 320 * 1024
DEFAULT_CHUNK_SIZE = 32 * CHUNK_UNIT  # 10 MiB
DEFAULT_MAX_RESUME_ATTEMPTS = 3

_RANGE_RE = re.compile(r'^\s*(\d+)-(\d*)\s*$')


def parse_resume_offset(status: Dict[str, Any]) -> Optional[int]:
    """Return the byte offset an upload session expects next.

    The session status lists the ranges it is still missing, e.g.
    ``{"nextExpectedRanges": ["26214400-"]}``; the start of the first range
    is the end of the data received so far.

    Args:
        status: Upload session status JSON

    Returns:
        The resume offset, or None if the status cannot be parsed
    """
    if not isinstance(status, dict):
        return None
    ranges = status.get('nextExpectedRanges')
    if not isinstance(ranges, list) or not ranges or not isinstance(ranges[0], str):
        return None
    match = _RANGE_RE.match(ranges[0])
    if not match:
        return None
    return int(match.group(1))


class SourceStream:
    """Reads fixed-size chunks from a streamed download response.

    After a failed transfer the stream is pointed at a new response (a range
    request from the resume offset) with ``reset``.
    """

    PIECE_SIZE = 64 * 1024

    def __init__(self, response: requests.Response):
        self.response = response
        self._pieces = response.iter_content(chunk_size=self.PIECE_SIZE)
        self._pending = b''

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; fewer only when the stream ends.

        Raises:
            requests.exceptions.RequestException: If the stream breaks
        """
        buffer = bytearray(self._pending)
        self._pending = b''
        while len(buffer) < size:
            try:
                piece = next(self._pieces)
            except StopIteration:
                break
            buffer.extend(piece)
        if len(buffer) > size:
            self._pending = bytes(buffer[size:])
            del buffer[size:]
        return bytes(buffer)

    def reset(self, response: requests.Response) -> None:
        """Close the current response and continue reading from ``response``."""
        self.close()
        self.response = response
        self._pieces = response.iter_content(chunk_size=self.PIECE_SIZE)
        self._pending = b''

    def close(self) -> None:
        self.response.close()


class UploadSessionManager:
    """Copies single files from the source account to a destination."""

    def __init__(self, source: OneDriveClient, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_resume_attempts: int = DEFAULT_MAX_RESUME_ATTEMPTS):
        """Initialize upload manager.

        Args:
            source: Client for the account files are read from
            chunk_size: Bytes per PUT request
            max_resume_attempts: Consecutive resumes allowed before giving up
        """
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got: {chunk_size}")
        self.source = source
        self.chunk_size = chunk_size
        self.max_resume_attempts = max_resume_attempts

    def upload_file(self, job: SyncJob) -> bool:
        """Copy one file into its destination folder.

        Args:
            job: The file and where to put it

        Returns:
            True once the destination confirmed every byte, False otherwise
        """
        item = job.item
        if item.size == 0:
            return self._upload_empty(job)

        try:
            stream = SourceStream(self.source.open_download(item, 0))
        except (OneDriveError, requests.exceptions.RequestException) as e:
            logger.error(f"Cannot read source {item.item_path}: {e}")
            return False

        try:
            return self._send_chunks(job, stream)
        finally:
            stream.close()

    def _send_chunks(self, job: SyncJob, stream: SourceStream) -> bool:
        item = job.item
        dest = job.destination

        try:
            upload_url = dest.create_upload_session(job.dest_folder, item.name)
        except (OneDriveError, requests.exceptions.RequestException) as e:
            logger.error(f"Session: {item.name}: {e}")
            return False
        if not upload_url:
            logger.error(f"Session: no upload URL returned for {item.name}")
            return False

        logger.info(f"Upload: {item.name} - {format_size(item.size)}")

        offset = 0
        tries = 0
        while offset < item.size:
            expected = min(self.chunk_size, item.size - offset)
            error = None
            try:
                data = stream.read(expected)
            except requests.exceptions.RequestException as e:
                error = f"source read interrupted: {e}"
            else:
                if len(data) < expected:
                    error = f"source stream ended at {offset + len(data)} of {item.size}"
                else:
                    try:
                        response = dest.put_chunk(upload_url, data, offset, item.size)
                    except requests.exceptions.RequestException as e:
                        error = f"chunk upload failed: {e}"
                    else:
                        if response.status_code >= 400:
                            error = f"chunk rejected with status {response.status_code}"
                        else:
                            offset += len(data)
                            tries = 0
                            logger.info(f"{format_size(offset)} / {format_size(item.size)} "
                                        f"Status: {response.status_code} Name: {item.name}")
                            continue

            logger.warning(f"Error: {item.name} at offset {offset}: {error}")
            if tries >= self.max_resume_attempts:
                logger.error(f"Too many tries for {item.name}")
                return False
            tries += 1

            offset = self._resume(job, upload_url, stream)
            if offset is None:
                return False

        logger.info(f"Uploaded: {item.name}")
        return True

    def _resume(self, job: SyncJob, upload_url: str, stream: SourceStream) -> Optional[int]:
        """Ask the session where to continue and re-open the source there.

        Returns:
            The offset to continue from, or None if the upload cannot resume
        """
        item = job.item
        try:
            status = job.destination.get_upload_status(upload_url)
        except (OneDriveError, requests.exceptions.RequestException) as e:
            logger.error(f"Cannot query upload session for {item.name}: {e}")
            return None

        offset = parse_resume_offset(status)
        if not offset or offset >= item.size:
            logger.error(f"Cannot resume {item.name}: unusable session status {status!r}")
            return None

        logger.info(f"Resume: {item.name} from {format_size(offset)} ({offset})")
        try:
            stream.reset(self.source.open_download(item, offset))
        except (OneDriveError, requests.exceptions.RequestException) as e:
            logger.error(f"Cannot re-open source {item.item_path} at {offset}: {e}")
            return None
        return offset

    def _upload_empty(self, job: SyncJob) -> bool:
        # An empty body cannot be described by a Content-Range header
        try:
            job.destination.put_content(job.dest_folder, job.item.name, b'')
        except (OneDriveError, requests.exceptions.RequestException) as e:
            logger.error(f"Upload of empty file {job.item.name} failed: {e}")
            return False
        logger.info(f"Uploaded: {job.item.name} (empty file)")
        return True
