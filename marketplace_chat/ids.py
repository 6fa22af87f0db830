"""Identifier helpers. Every entity id in the chat service is a UUID."""

from typing import Any
from uuid import UUID

from marketplace_chat.errors import ValidationError


def is_valid_id(value: Any) -> bool:
    """Return True if ``value`` is a UUID or a string that parses as one."""
    if isinstance(value, UUID):
        return True
    if not isinstance(value, str) or not value:
        return False
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def parse_id(value: Any, error_code: str) -> UUID:
    """Parse ``value`` as an id or raise ``ValidationError(error_code)``."""
    if not is_valid_id(value):
        raise ValidationError(error_code)
    return value if isinstance(value, UUID) else UUID(value)

