"""Configuration validators for ODMirror."""

import logging
from typing import Any
from urllib.parse import urlparse
import uuid

from .path_utils import SecurityError, normalize_remote_path

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigValidator:
    """Base class for configuration validators."""

    def validate(self, value: Any) -> Any:
        """Validate and normalize a configuration value.

        Args:
            value: Raw configuration value

        Returns:
            Validated and normalized value

        Raises:
            ValidationError: If validation fails
        """
        raise NotImplementedError


class RemotePathValidator(ConfigValidator):
    """Validates an absolute remote folder path."""

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Remote path must be a string, got: {type(value)}")

        if not value.startswith('/'):
            raise ValidationError(f"Remote path must start with '/', got: {value}")

        try:
            return normalize_remote_path(value)
        except SecurityError as e:
            raise ValidationError(str(e))


class ChunkSizeValidator(ConfigValidator):
    """Validates the upload chunk size (bytes per PUT request)."""

    UNIT = 320 * 1024  # Upload fragments must be multiples of 320 KiB
    MAX_SIZE = 60 * 1024 * 1024

    def validate(self, value: Any) -> int:
        try:
            size = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"Chunk size must be an integer, got: {value}")

        if size <= 0 or size % self.UNIT:
            raise ValidationError(
                f"Chunk size must be a positive multiple of {self.UNIT} bytes, got: {size}"
            )

        if size > self.MAX_SIZE:
            raise ValidationError(
                f"Chunk size must be at most {self.MAX_SIZE} bytes (60 MiB)"
            )

        return size


class LogLevelValidator(ConfigValidator):
    """Validates log level."""

    VALID_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Log level must be a string, got: {type(value)}")

        level = value.upper()

        if level not in self.VALID_LEVELS:
            raise ValidationError(
                f"Invalid log level: {value}. Must be one of: {', '.join(sorted(self.VALID_LEVELS))}"
            )

        return level


class ClientIdValidator(ConfigValidator):
    """Validates OAuth client ID (must be valid UUID format)."""

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Client ID must be a string, got: {type(value)}")

        client_id = value.strip()

        if not client_id:
            raise ValidationError("Client ID cannot be empty")

        try:
            uuid.UUID(client_id)
        except ValueError:
            raise ValidationError(
                f"Client ID must be a valid UUID format, got: {client_id}"
            )

        return client_id


class HttpsUrlValidator(ConfigValidator):
    """Validates an https:// URL."""

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"URL must be a string, got: {type(value)}")

        parsed = urlparse(value.strip())
        if parsed.scheme != 'https' or not parsed.hostname:
            raise ValidationError(f"URL must use https and name a host, got: {value}")

        return value.strip().rstrip('/')


class IntegerValidator(ConfigValidator):
    """Validates integer values with optional min/max bounds."""

    def __init__(self, min_value: int = None, max_value: int = None):
        self.min_value = min_value
        self.max_value = max_value

    def validate(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"Must be an integer, got: {value}")
        try:
            int_value = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"Must be an integer, got: {value}")

        if self.min_value is not None and int_value < self.min_value:
            raise ValidationError(
                f"Must be at least {self.min_value}, got: {int_value}"
            )

        if self.max_value is not None and int_value > self.max_value:
            raise ValidationError(
                f"Must be at most {self.max_value}, got: {int_value}"
            )

        return int_value


class NumberValidator(ConfigValidator):
    """Validates non-negative numbers of seconds."""

    def __init__(self, max_value: float):
        self.max_value = max_value

    def validate(self, value: Any) -> float:
        try:
            number = float(value)
        except (ValueError, TypeError):
            raise ValidationError(f"Must be a number, got: {value}")

        if number < 0 or number > self.max_value:
            raise ValidationError(f"Must be between 0 and {self.max_value}, got: {number}")

        return number


# Registry of validators for known config keys
VALIDATORS = {
    'source_path': RemotePathValidator(),
    'dest_path': RemotePathValidator(),
    'workers': IntegerValidator(min_value=1, max_value=32),
    'chunk_size': ChunkSizeValidator(),
    'max_resume_attempts': IntegerValidator(min_value=1, max_value=10),
    'retry_delay': NumberValidator(max_value=3600),
    'max_upload_attempts': IntegerValidator(min_value=0, max_value=1000),
    'api_base': HttpsUrlValidator(),
    'token_url': HttpsUrlValidator(),
    'client_id': ClientIdValidator(),
    'log_level': LogLevelValidator(),
}


def validate_config_value(key: str, value: Any) -> Any:
    """Validate a configuration value using registered validators.

    Args:
        key: Configuration key
        value: Value to validate

    Returns:
        Validated and normalized value

    Raises:
        ValidationError: If validation fails
    """
    if key in VALIDATORS:
        return VALIDATORS[key].validate(value)

    # Unknown keys pass through unchanged
    logger.debug(f"No validator for config key: {key}")
    return value
