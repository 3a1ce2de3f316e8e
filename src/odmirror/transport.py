#!/usr/bin/env python3
"""Authenticated HTTP transport shared by the workers of one account."""

import logging
from typing import Optional, Tuple, Union
from urllib.parse import urlparse

import requests
import certifi

from .auth import CredentialRefresher
from .path_utils import SecurityError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (10, 120)  # (connect, read) seconds


class DriveTransport:
    """Thin wrapper around a ``requests.Session`` for one account.

    Every call carries a timeout so a stalled connection cannot block a
    worker forever. The session is shared read-only between threads; the
    only mutable state, the access token, lives in the CredentialRefresher.
    """

    def __init__(self, credentials: Optional[CredentialRefresher], api_base: str,
                 timeout: Union[float, Tuple[float, float]] = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        """Initialize transport.

        Args:
            credentials: Token source for the bearer header
            api_base: API root, e.g. "https://api.onedrive.com/v1.0"
            timeout: Default requests timeout for every call
            session: Pre-built session (mainly for tests)
        """
        self.credentials = credentials
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.verify = certifi.where()  # Explicit certificate validation

    def url_for(self, endpoint: str) -> str:
        """Build a full URL for an API endpoint."""
        return f"{self.api_base}{endpoint}"

    def check_api_url(self, url: str) -> str:
        """Validate that a provider-supplied link points at the API host.

        Raises:
            SecurityError: If URL is not on the configured API host over HTTPS
        """
        parsed = urlparse(url)
        base = urlparse(self.api_base)
        if not (parsed.scheme == base.scheme == 'https' and
                parsed.hostname == base.hostname and
                parsed.path.startswith(base.path)):
            raise SecurityError(
                f"Untrusted continuation URL: {url} "
                f"(scheme={parsed.scheme}, host={parsed.hostname}, path={parsed.path})"
            )
        return url

    def request(self, method: str, url: str, authenticated: bool = True,
                **kwargs) -> requests.Response:
        """Send a request and return the response without raising on status.

        Args:
            method: HTTP method
            url: Full URL
            authenticated: Add the bearer header (pre-authenticated upload
                and download URLs must not receive it)
            **kwargs: Additional requests arguments

        Returns:
            Response object

        Raises:
            AuthenticationError: If no valid access token can be obtained
        """
        headers = kwargs.pop('headers', None) or {}
        if authenticated and self.credentials is not None:
            headers['Authorization'] = f"Bearer {self.credentials.access_token()}"
        kwargs.setdefault('timeout', self.timeout)

        response = self._session.request(method, url, headers=headers, **kwargs)

        if response.status_code == 401 and authenticated and self.credentials is not None:
            logger.info(f"{method} {urlparse(url).path} returned 401, refreshing token and retrying")
            response.close()
            self.credentials.force_refresh()
            headers['Authorization'] = f"Bearer {self.credentials.access_token()}"
            response = self._session.request(method, url, headers=headers, **kwargs)

        return response

    def api(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Send an authenticated request to an API endpoint."""
        return self.request(method, self.url_for(endpoint), **kwargs)

    def close(self) -> None:
        self._session.close()
