"""
Input sanitizing helpers used when caller-supplied values reach the logs.
"""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def sanitize_for_logging(value: str) -> str:
    """Sanitize user-controlled strings for safe logging.

    Prevents log injection attacks by removing newlines and other control characters
    that could be used to forge log entries.

    Args:
        value: String value to sanitize (can be None)

    Returns:
        Sanitized string with newlines replaced by spaces
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    value = value.replace("\n", " ").replace("\r", " ")
    return _CONTROL_CHARS.sub("", value)


def mask_email(email: str | None) -> str:
    """Mask the local part of an email address, e.g. 'jane@x.com' -> 'j***@x.com'"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"
