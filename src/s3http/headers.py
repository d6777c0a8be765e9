"""Parsing of raw HTTP response header blocks."""

import email.utils
from dataclasses import dataclass
from datetime import timezone

from s3http.errors import ParseError


@dataclass(frozen=True)
class ObjectStat:
    """Size and modification time of a remote object.

    Attributes:
        size: Object length in bytes.
        last_modified: Modification time as Unix epoch seconds (0 if unknown).
    """

    size: int
    last_modified: int = 0


def parse_header_block(block: str) -> dict[str, str]:
    """Split a header blob into a name -> value dict.

    Names are lower-cased and values trimmed. A leading status line and blank
    lines are skipped; repeated headers keep their first value.

    Args:
        block: CRLF- or LF-separated header lines.
    """
    headers: dict[str, str] = {}
    for line in block.splitlines():
        if not line.strip() or line.startswith("HTTP/"):
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers.setdefault(name.strip().lower(), value.strip())
    return headers


def parse_http_date(value: str) -> int:
    """Convert an RFC 7231 date (e.g. ``Last-Modified``) to epoch seconds.

    Returns 0 if the value cannot be parsed.
    """
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return 0
    if parsed.tzinfo is None:
        # GMT is the only zone HTTP dates are allowed to use.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def parse_object_stat(block: str) -> ObjectStat:
    """Extract ``Content-Length`` and ``Last-Modified`` from a HEAD response.

    Raises:
        ParseError: If Content-Length is missing or not a non-negative integer.
    """
    headers = parse_header_block(block)
    raw_length = headers.get("content-length")
    if raw_length is None:
        raise ParseError("HEAD response has no Content-Length header")
    try:
        size = int(raw_length)
    except ValueError:
        raise ParseError(f"Invalid Content-Length: {raw_length!r}")
    if size < 0:
        raise ParseError(f"Invalid Content-Length: {raw_length!r}")

    last_modified = 0
    if "last-modified" in headers:
        last_modified = parse_http_date(headers["last-modified"])
    return ObjectStat(size=size, last_modified=last_modified)
