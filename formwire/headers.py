from __future__ import annotations

import re

from formwire.errors import InvalidContentType

_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_QUOTED = r'"(?:[^"\\\r\n]|\\.)*"'
_CONTENT_TYPE_RE = re.compile(
    rf"^{_TOKEN}/{_TOKEN}(?:[ \t]*;[ \t]*{_TOKEN}=(?:{_TOKEN}|{_QUOTED}))*[ \t]*$"
)


def _sanitize_header(name: str, value: str) -> tuple[str, str]:
    """
    Sanitize header name and value to prevent HTTP header injection (CRLF injection).
    Strips CR, LF, and null bytes from both name and value.
    """
    clean_name = name.replace("\r", "").replace("\n", "").replace("\x00", "")
    clean_value = value.replace("\r", "").replace("\n", "").replace("\x00", "")
    return clean_name, clean_value


def escape_param(value: str) -> str:
    """Escape a quoted Content-Disposition parameter value."""
    # Same percent-escaping browsers apply to form field names (WHATWG HTML).
    return value.replace("\r", "%0D").replace("\n", "%0A").replace('"', "%22")


def validate_content_type(content_type: str) -> str:
    """
    Check that a MIME type string parses as `type/subtype[; param=value]*`.

    Args:
        content_type: Caller-supplied MIME type

    Returns:
        The content type with surrounding whitespace removed

    Raises:
        InvalidContentType: If the value is not a valid media type
    """
    if not isinstance(content_type, str):
        raise InvalidContentType(f"Content type must be a string, got {type(content_type).__name__}")
    value = content_type.strip()
    if not _CONTENT_TYPE_RE.match(value):
        raise InvalidContentType(f"Invalid content type: {content_type!r}")
    return value
