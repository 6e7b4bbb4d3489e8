"""
Validators
==========

Common validation utilities.
"""

import string
from typing import Any, Optional

from app.core.errors import (
    ErrorCodes,
    InvalidPayloadError,
    InvalidTokenError,
    PayloadTooLargeError,
    ValidationError,
)
from app.utils.helpers import decode_base64_json

PUSH_TOKEN_MIN_LENGTH = 32
PUSH_TOKEN_MAX_LENGTH = 200

_HEX_DIGITS = frozenset(string.hexdigits)


def is_valid_push_token(token: str) -> bool:
    """
    Check the Live Activity push token format.

    Tokens are hex strings; real device tokens vary in length and can
    run past 64 characters, so anything from 32 to 200 is accepted.
    """
    if not token:
        return False
    if not PUSH_TOKEN_MIN_LENGTH <= len(token) <= PUSH_TOKEN_MAX_LENGTH:
        return False
    return all(c in _HEX_DIGITS for c in token)


def validate_push_token(token: str) -> str:
    """
    Validate a push token.

    Args:
        token: Push token supplied by the device

    Returns:
        The token, unchanged

    Raises:
        InvalidTokenError: If the token fails the format check
    """
    if not is_valid_push_token(token):
        raise InvalidTokenError(
            message=(
                f"Invalid push token: expected {PUSH_TOKEN_MIN_LENGTH}-"
                f"{PUSH_TOKEN_MAX_LENGTH} hexadecimal characters"
            ),
        )
    return token


def decode_state_blob(value: str, field_name: str) -> dict[str, Any]:
    """
    Decode a base64 JSON blob (content state or attributes).

    Raises:
        InvalidPayloadError: If the blob is not base64-encoded JSON object
    """
    data = decode_base64_json(value)
    if data is None:
        raise InvalidPayloadError(
            message=f"Could not parse {field_name.replace('_', ' ')}",
            field=field_name,
        )
    return data


def decode_optional_state_blob(
    value: Optional[str],
    field_name: str,
) -> Optional[dict[str, Any]]:
    """Like :func:`decode_state_blob` but passes ``None``/empty through."""
    if not value:
        return None
    return decode_state_blob(value, field_name)


def validate_file_size(
    size_bytes: int,
    max_size_mb: int = 10,
    field_name: str = "file",
) -> None:
    """
    Validate upload size.

    Args:
        size_bytes: Payload size in bytes
        max_size_mb: Maximum size in MB
        field_name: Field name for error message

    Raises:
        ValidationError: If the payload is empty
        PayloadTooLargeError: If the payload is too large
    """
    if size_bytes == 0:
        raise ValidationError(
            message="Payload is empty",
            field=field_name,
            code=ErrorCodes.STREAM_EMPTY_PAYLOAD,
        )

    max_bytes = max_size_mb * 1024 * 1024

    if size_bytes > max_bytes:
        raise PayloadTooLargeError(max_size_mb=max_size_mb, field=field_name)
