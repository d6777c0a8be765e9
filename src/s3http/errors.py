"""Error taxonomy for s3http.

Four families are kept distinct so that callers can tell a configuration
mistake from a network failure, a protocol rejection, or a malformed reply:

    ConfigError     incomplete AccessInfo or export definition
    TransportError  no HTTP response was received (DNS, connect, TLS, timeout)
    ProtocolError   a response arrived with a non-success status
    ParseError      a successful response could not be interpreted

Every error carries a POSIX ``errno`` so an adapter can flatten the taxonomy
into its host runtime's result codes.
"""

from __future__ import annotations

import errno as _errno
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3http.http import HttpOutcome


class S3HttpError(Exception):
    """Base class for all s3http errors.

    Attributes:
        code: Short machine-readable error code.
        message: Human-readable error description.
        errno: POSIX error number an adapter should report.
    """

    def __init__(self, code: str, message: str, errno: int = _errno.EIO) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.errno = errno


class ConfigError(S3HttpError):
    """Incomplete or invalid configuration, detected before any network call."""

    def __init__(self, message: str = "Invalid configuration") -> None:
        super().__init__(code="ConfigError", message=message, errno=_errno.EINVAL)


class InvalidObjectKey(S3HttpError):
    """The object key cannot be addressed over HTTP as written.

    Keys with ``.`` or ``..`` path segments are legal in S3, but the URL
    layer normalizes them away, so the request would not match its signature.
    """

    def __init__(self, key: str) -> None:
        super().__init__(
            code="InvalidObjectKey",
            message=f"Object key has '.' or '..' path segments: {key}",
            errno=_errno.EINVAL,
        )
        self.key = key


class TransportError(S3HttpError):
    """No HTTP response was received.

    Attributes:
        error_code: Low-level error identifier (the transport exception name).
        error_message: Low-level error description.
    """

    def __init__(self, error_code: str, error_message: str) -> None:
        super().__init__(
            code="TransportError",
            message=f"{error_code}: {error_message}",
            errno=_errno.EIO,
        )
        self.error_code = error_code
        self.error_message = error_message


class ProtocolError(S3HttpError):
    """A response was received with a non-success status.

    Attributes:
        status: The HTTP status code.
        body: The raw response body, kept for diagnostics.
    """

    def __init__(
        self,
        status: int,
        body: bytes = b"",
        message: str = "",
        errno: int = _errno.EIO,
    ) -> None:
        super().__init__(
            code="ProtocolError",
            message=message or f"Request failed with HTTP status {status}",
            errno=errno,
        )
        self.status = status
        self.body = body


class ObjectNotFound(ProtocolError):
    """The object (or the export holding it) does not exist."""

    def __init__(self, status: int = 404, body: bytes = b"", message: str = "") -> None:
        super().__init__(
            status=status,
            body=body,
            message=message or "The specified object does not exist.",
            errno=_errno.ENOENT,
        )


class PermissionDenied(ProtocolError):
    """The credentials are not allowed to perform the operation."""

    def __init__(self, status: int = 403, body: bytes = b"", message: str = "") -> None:
        super().__init__(
            status=status,
            body=body,
            message=message or "Access Denied",
            errno=_errno.EPERM,
        )


class ParseError(S3HttpError):
    """A successful response's body or headers were not in the expected shape."""

    def __init__(self, message: str = "Malformed response") -> None:
        super().__init__(code="ParseError", message=message, errno=_errno.EIO)


class ReadOnlyError(S3HttpError):
    """The export does not accept writes."""

    def __init__(self, message: str = "Export is read-only") -> None:
        super().__init__(code="ReadOnly", message=message, errno=_errno.EROFS)


def error_for_status(status: int, body: bytes = b"") -> ProtocolError:
    """Map a non-success HTTP status to the matching ProtocolError.

    404 is ``ObjectNotFound``, 403 is ``PermissionDenied``; anything else,
    5xx included, is a generic I/O error.
    """
    if status == 404:
        return ObjectNotFound(status, body)
    if status == 403:
        return PermissionDenied(status, body)
    return ProtocolError(status, body)


def error_from_outcome(outcome: HttpOutcome) -> S3HttpError:
    """Build the exception describing a failed HttpOutcome.

    Args:
        outcome: An outcome whose ``ok`` property is False.

    Returns:
        A TransportError when no response was received, otherwise the
        status-mapped ProtocolError.
    """
    if not outcome.transport_ok:
        return TransportError(outcome.error_code, outcome.error_message)
    return error_for_status(outcome.status, outcome.body)
