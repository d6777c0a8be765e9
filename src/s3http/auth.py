"""AWS Signature Version 4 request signing for s3http.

Produces the ``Authorization`` header for header-based SigV4 auth. The
canonicalization helpers are also used by the HTTP layer to build the
request URL, so the bytes on the wire match the bytes that were signed.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-authenticating-requests.html
"""

import hashlib
import hmac
import re
import threading
import urllib.parse
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from s3http.access import AccessInfo

# Constants
ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
SERVICE_NAME = "s3"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

QueryParams = Mapping[str, str] | Iterable[tuple[str, str]]


@dataclass(frozen=True)
class SigningContext:
    """Everything that goes into one canonical request.

    Derived fresh for every attempt and never persisted.
    """

    verb: str
    path: str
    query: tuple[tuple[str, str], ...]
    headers: tuple[tuple[str, str], ...]
    payload_hash: str


class SigV4Signer:
    """Signs S3 requests with AWS Signature Version 4.

    Signing is a pure function of its inputs; the only state is a cache of
    derived signing keys, guarded by a lock so one signer can be shared by
    every file handle in the process.
    """

    def __init__(self, service: str = SERVICE_NAME) -> None:
        self.service = service
        # (access_key, date, region, service) -> signing_key bytes
        self._signing_key_cache: dict[tuple[str, str, str, str], bytes] = {}
        self._lock = threading.Lock()

    def sign(
        self,
        access: AccessInfo,
        verb: str,
        path: str,
        query: QueryParams,
        headers: Mapping[str, str],
        payload_hash: str,
        timestamp: datetime | None = None,
    ) -> dict[str, str]:
        """Compute the signing-derived headers for one request.

        Args:
            access: Target and credentials. Must carry both keys.
            verb: HTTP method (uppercase).
            path: Unencoded request path, e.g. ``/bucket/some key``.
            query: Unencoded query parameters.
            headers: Headers to sign; must include ``host``.
            payload_hash: Hex SHA-256 of the body (``EMPTY_SHA256`` if none).
            timestamp: Request time; defaults to now (UTC).

        Returns:
            A dict with ``x-amz-date``, ``x-amz-content-sha256`` and
            ``Authorization``.

        Raises:
            ConfigError: If the credentials are incomplete.
        """
        access.validate()
        amz_date = format_amz_date(timestamp or datetime.now(timezone.utc))
        date_part = amz_date[:8]

        signed = {name.lower(): value for name, value in headers.items()}
        signed["x-amz-date"] = amz_date
        signed["x-amz-content-sha256"] = payload_hash

        context = SigningContext(
            verb=verb,
            path=path,
            query=tuple(_query_pairs(query)),
            headers=tuple(sorted(signed.items())),
            payload_hash=payload_hash,
        )
        canonical_request, signed_headers = build_canonical_request(context)

        scope = f"{date_part}/{access.region}/{self.service}/{SCOPE_TERMINATOR}"
        string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
        signing_key = self._derive_signing_key(
            access.secret_key, date_part, access.region, access.access_key
        )
        signature = compute_signature(signing_key, string_to_sign)

        return {
            "x-amz-date": amz_date,
            "x-amz-content-sha256": payload_hash,
            "Authorization": (
                f"{ALGORITHM} Credential={access.access_key}/{scope}, "
                f"SignedHeaders={signed_headers}, Signature={signature}"
            ),
        }

    def _derive_signing_key(
        self, secret_key: str, date: str, region: str, access_key: str
    ) -> bytes:
        """Derive (or fetch from cache) the signing key for one scope."""
        cache_key = (access_key, date, region, self.service)
        with self._lock:
            cached = self._signing_key_cache.get(cache_key)
        if cached is not None:
            return cached

        signing_key = derive_signing_key(secret_key, date, region, self.service)

        with self._lock:
            # Keys roll over daily; a small cache is enough.
            if len(self._signing_key_cache) > 100:
                self._signing_key_cache.clear()
            self._signing_key_cache[cache_key] = signing_key
        return signing_key


# ---------------------------------------------------------------------------
# Module-level utility functions
# ---------------------------------------------------------------------------


def format_amz_date(timestamp: datetime) -> str:
    """Format a datetime as an ISO-8601 basic UTC timestamp (YYYYMMDDTHHMMSSZ)."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(AMZ_DATE_FORMAT)


def build_canonical_request(context: SigningContext) -> tuple[str, str]:
    """Build the canonical request string.

    Args:
        context: The request description. Header names may be mixed case.

    Returns:
        A tuple of (canonical request, semicolon-joined signed header names).
    """
    lower_headers: dict[str, str] = {}
    for name, value in context.headers:
        lower_name = name.lower()
        if lower_name in lower_headers:
            # Multiple same headers: join with comma
            lower_headers[lower_name] += "," + _trim_header_value(value)
        else:
            lower_headers[lower_name] = _trim_header_value(value)

    sorted_names = sorted(lower_headers)
    canonical_headers = "".join(f"{name}:{lower_headers[name]}\n" for name in sorted_names)
    signed_headers = ";".join(sorted_names)

    parts = [
        context.verb,
        uri_encode_path(context.path),
        canonical_query_string(context.query),
        canonical_headers,
        signed_headers,
        context.payload_hash,
    ]
    return "\n".join(parts), signed_headers


def build_string_to_sign(timestamp: str, scope: str, canonical_request: str) -> str:
    """Build the string to sign.

    Args:
        timestamp: ISO 8601 basic timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (YYYYMMDD/region/s3/aws4_request).
        canonical_request: The assembled canonical request string.
    """
    canonical_hash = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
    return f"{ALGORITHM}\n{timestamp}\n{scope}\n{canonical_hash}"


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Args:
        secret_key: The secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        The 32-byte signing key.
    """
    k_date = hmac.new(
        (KEY_PREFIX + secret_key).encode("utf-8"),
        date.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    k_region = hmac.new(k_date, region.encode("utf-8"), hashlib.sha256).digest()
    k_service = hmac.new(k_region, service.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(k_service, SCOPE_TERMINATOR.encode("utf-8"), hashlib.sha256).digest()


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the final HMAC-SHA256 hex signature."""
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def payload_sha256(payload: bytes) -> str:
    """Hex SHA-256 of a request body."""
    if not payload:
        return EMPTY_SHA256
    return hashlib.sha256(payload).hexdigest()


def canonical_query_string(query: QueryParams) -> str:
    """Build the canonical query string from unencoded parameters.

    Parameters are sorted by name (byte-order), then by value. Each name and
    value is URI-encoded. Parameters with no value use an empty value
    (e.g. ``uploads=``).
    """
    params = sorted(_query_pairs(query))
    return "&".join(
        f"{_uri_encode(name, encode_slash=True)}={_uri_encode(value, encode_slash=True)}"
        for name, value in params
    )


def _query_pairs(query: QueryParams) -> list[tuple[str, str]]:
    if isinstance(query, Mapping):
        return [(str(k), str(v)) for k, v in query.items()]
    return [(str(k), str(v)) for k, v in query]


def _uri_encode(s: str, encode_slash: bool = True) -> str:
    """S3-compatible URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded.
    All other characters are percent-encoded with uppercase hex.
    Spaces become %20 (not +).

    Args:
        s: The string to encode.
        encode_slash: If True (default), '/' is encoded as %2F.
                     If False, '/' is left as-is.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(s, safe=safe)


def uri_encode_path(path: str) -> str:
    """URI-encode a path, preserving forward slashes."""
    if not path:
        return "/"
    segments = path.split("/")
    result = "/".join(_uri_encode(seg, encode_slash=False) for seg in segments)
    if not result.startswith("/"):
        result = "/" + result
    return result


def _trim_header_value(value: str) -> str:
    """Strip surrounding whitespace and collapse inner runs of spaces."""
    return re.sub(r" +", " ", value.strip())
