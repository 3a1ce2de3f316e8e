#!/usr/bin/env python3
"""Configuration and token files for ODMirror.

Directory layout (default ``~/.config/odmirror``)::

    config.json            settings, see Config.DEFAULTS
    tokens/source.json     token data of the account being copied
    tokens/destination.json
    odmirror.log

Tokens are obtained elsewhere; this module only reads them and writes back
the refreshed versions.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from .validators import validate_config_value, ValidationError

logger = logging.getLogger(__name__)

ACCOUNTS = ('source', 'destination')


class Config:
    """Manages ODMirror configuration."""

    DEFAULT_CONFIG_DIR = Path.home() / ".config" / "odmirror"
    CONFIG_FILE = "config.json"
    TOKEN_DIR = "tokens"
    LOG_FILE = "odmirror.log"

    DEFAULTS: Dict[str, Any] = {
        'source_path': '/',
        'dest_path': '/',
        'workers': 5,
        'chunk_size': 10 * 1024 * 1024,
        'max_resume_attempts': 3,
        'retry_delay': 5,
        'max_upload_attempts': 10,  # 0 retries forever
        'api_base': 'https://api.onedrive.com/v1.0',
        'token_url': 'https://login.live.com/oauth20_token.srf',
        'client_id': '',
        'log_level': 'INFO',
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Custom configuration directory path
        """
        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.config_dir / self.CONFIG_FILE
        self.token_dir = self.config_dir / self.TOKEN_DIR
        self.log_path = self.config_dir / self.LOG_FILE

        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file."""
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                self._config = {**self.DEFAULTS, **json.load(f)}
            logger.debug(f"Loaded config from {self.config_path}")
        else:
            # Initialize with defaults
            self._config = dict(self.DEFAULTS)
            self.save()
            logger.debug(f"Created default config at {self.config_path}")

    def save(self) -> None:
        """Save configuration to file."""
        with open(self.config_path, 'w') as f:
            json.dump(self._config, f, indent=2)
        # Secure file permissions (owner read/write only)
        self.config_path.chmod(0o600)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value with validation.

        Args:
            key: Configuration key
            value: Configuration value

        Raises:
            ValueError: If value is invalid for the given key
        """
        try:
            validated_value = validate_config_value(key, value)
        except ValidationError as e:
            raise ValueError(f"{key}: {e}")
        self._config[key] = validated_value
        self.save()

    def validated(self, key: str) -> Any:
        """Get a configuration value, validating what was read from disk.

        Raises:
            ValueError: If the stored value is invalid
        """
        try:
            return validate_config_value(key, self._config.get(key, self.DEFAULTS.get(key)))
        except ValidationError as e:
            raise ValueError(f"Invalid {key} in {self.config_path}: {e}")

    @property
    def source_path(self) -> str:
        return self.validated('source_path')

    @property
    def dest_path(self) -> str:
        return self.validated('dest_path')

    @property
    def workers(self) -> int:
        return self.validated('workers')

    @property
    def chunk_size(self) -> int:
        return self.validated('chunk_size')

    @property
    def max_resume_attempts(self) -> int:
        return self.validated('max_resume_attempts')

    @property
    def retry_delay(self) -> float:
        return self.validated('retry_delay')

    @property
    def max_upload_attempts(self) -> Optional[int]:
        """Upload attempts per file; None means retry forever."""
        return self.validated('max_upload_attempts') or None

    @property
    def api_base(self) -> str:
        return self.validated('api_base')

    @property
    def token_url(self) -> str:
        return self.validated('token_url')

    @property
    def client_id(self) -> str:
        """Get OAuth client ID."""
        return self._config.get('client_id', '')

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self._config.get('log_level', 'INFO').upper()

    def _token_path(self, account: str) -> Path:
        if account not in ACCOUNTS:
            raise ValueError(f"Unknown account: {account}. Must be one of: {', '.join(ACCOUNTS)}")
        return self.token_dir / f"{account}.json"

    def save_token(self, account: str, token_data: Dict[str, Any]) -> None:
        """Save token data for an account.

        Args:
            account: "source" or "destination"
            token_data: Token data dictionary
        """
        path = self._token_path(account)
        self.token_dir.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(token_data, f, indent=2)
        # Secure file permissions (owner read/write only)
        path.chmod(0o600)
        logger.debug(f"Token saved for {account} account")

    def load_token(self, account: str) -> Optional[Dict[str, Any]]:
        """Load token data for an account.

        Returns:
            Token data or None if not found or unreadable
        """
        path = self._token_path(account)
        if not path.exists():
            return None

        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {account} token: {e}")
            return None
