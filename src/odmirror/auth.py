#!/usr/bin/env python3
"""Access-token refresh for a OneDrive account."""

import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
import certifi

from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# Refresh when the token expires within this many seconds
EXPIRY_MARGIN = 300


def sanitize_for_log(text: str) -> str:
    """Remove sensitive data from log output.

    Args:
        text: Text to sanitize

    Returns:
        Sanitized text with sensitive data redacted
    """
    text = re.sub(r'(access_token|refresh_token|code)["\']?\s*[:=]\s*["\']?[\w\-\.]+',
                  r'\1=***REDACTED***', text, flags=re.IGNORECASE)
    text = re.sub(r'Bearer\s+[\w\-\.]+', 'Bearer ***REDACTED***', text, flags=re.IGNORECASE)
    return text


class CredentialRefresher:
    """Holds the token data of one account and refreshes it on demand.

    One instance is shared by every worker talking to the account. Refreshing
    mutates the token data, so it happens under a single lock and the expiry
    is re-checked once the lock is held; concurrent callers that lost the
    race reuse the token the winner obtained.
    """

    TOKEN_URL = "https://login.live.com/oauth20_token.srf"

    def __init__(self, client_id: str, token_data: Dict[str, Any],
                 token_url: Optional[str] = None,
                 on_refresh: Optional[Callable[[Dict[str, Any]], None]] = None):
        """Initialize the refresher.

        Args:
            client_id: OAuth application client ID
            token_data: Token data with access_token, refresh_token and
                optionally expires_at
            token_url: Token endpoint (defaults to the consumer endpoint)
            on_refresh: Called with new token data after each refresh
        """
        self.client_id = client_id
        self.token_url = token_url or self.TOKEN_URL
        self.on_refresh = on_refresh
        self._token_data = dict(token_data or {})
        self._lock = threading.Lock()
        self.refresh_count = 0

    @property
    def token_data(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._token_data)

    def _expired(self) -> bool:
        expires_at = self._token_data.get('expires_at')
        if expires_at is None:
            return not self._token_data.get('access_token')
        return expires_at < time.time() + EXPIRY_MARGIN

    def access_token(self) -> str:
        """Return a valid access token, refreshing it if needed.

        Raises:
            AuthenticationError: If not authenticated, or the token cannot be refreshed
        """
        with self._lock:
            if not self._token_data:
                raise AuthenticationError("Not authenticated: no token data for this account")
            if self._expired():
                logger.info("Token expired or expiring soon, refreshing...")
                self._refresh()
            return self._token_data['access_token']

    def force_refresh(self) -> None:
        """Refresh regardless of the recorded expiry (e.g. after a 401).

        Raises:
            AuthenticationError: If the token cannot be refreshed
        """
        with self._lock:
            self._refresh()

    def _refresh(self) -> None:
        # Caller holds self._lock
        if 'refresh_token' not in self._token_data:
            logger.error("No refresh token available")
            raise AuthenticationError("No refresh token available")

        data = {
            'client_id': self.client_id,
            'refresh_token': self._token_data['refresh_token'],
            'grant_type': 'refresh_token',
        }

        try:
            response = requests.post(self.token_url, data=data, verify=certifi.where(), timeout=30)
            logger.debug(f"Refresh token response status: {response.status_code}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Token refresh failed: {sanitize_for_log(str(e))}")
            raise

        if response.status_code != 200:
            logger.error(f"Token refresh failed with status {response.status_code}")
            logger.error(f"Response: {sanitize_for_log(response.text)}")
            raise AuthenticationError(
                f"Token refresh rejected with status {response.status_code}",
                response.status_code,
            )

        token_data = response.json()
        # Some endpoints omit the refresh token when it is unchanged
        token_data.setdefault('refresh_token', self._token_data['refresh_token'])
        token_data['expires_at'] = time.time() + token_data.get('expires_in', 3600)
        self._token_data = token_data
        self.refresh_count += 1
        logger.info("Successfully refreshed access token")

        if self.on_refresh:
            self.on_refresh(dict(token_data))
