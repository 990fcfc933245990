"""File system naming helpers."""

import re

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_MAX_NAME_LENGTH = 120


def sanitize_name(name: str, fallback: str = "unnamed") -> str:
    """Make a display name safe to use as a file or folder name.

    Args:
        name: Display name from the remote API.
        fallback: Used when nothing usable is left (typically the object ID).

    Returns:
        Sanitized name.

    Examples:
        >>> sanitize_name("Sales: Q1/Q2")
        'Sales_ Q1_Q2'
    """
    cleaned = _INVALID_CHARS.sub("_", name or "")
    cleaned = cleaned.strip().rstrip(". ")
    cleaned = cleaned[:_MAX_NAME_LENGTH].rstrip(". ")
    return cleaned or fallback
