#!/usr/bin/env python3
"""Exceptions raised while talking to a OneDrive account."""

from typing import Optional


class OneDriveError(Exception):
    """Raised when the OneDrive API rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FolderCreationError(OneDriveError):
    """Raised when a destination folder cannot be confirmed or created."""
    pass


class AuthenticationError(OneDriveError):
    """Raised when an account has no usable access token."""
    pass
