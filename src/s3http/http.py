"""One signed (or plain) HTTP exchange and its classified outcome.

``HttpCommand.send`` never raises for transport or protocol failures: both
are captured in the returned ``HttpOutcome``. Transport failures and 5xx
responses are retried a bounded number of times with a fixed backoff; 4xx
responses are returned immediately.
"""

import itertools
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from s3http import metrics
from s3http.access import AccessInfo
from s3http.auth import SigV4Signer, canonical_query_string, payload_sha256, uri_encode_path
from s3http.errors import InvalidObjectKey
from s3http.logging_config import attempt_fields

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF = 1.0


def check_path_segments(path: str) -> None:
    """Refuse paths the transport would rewrite before sending.

    httpx removes ``.`` and ``..`` segments from request URLs, so the path on
    the wire would differ from the signed canonical URI and address a
    different object.

    Raises:
        InvalidObjectKey: If any segment is ``.`` or ``..``.
    """
    if any(segment in (".", "..") for segment in path.split("/")):
        raise InvalidObjectKey(path)


@dataclass
class HttpOutcome:
    """Result of one logical request (after any retries).

    Attributes:
        transport_ok: False if no HTTP response was received.
        status: HTTP status code, 0 if no response was received.
        body: Raw response body.
        headers: Response headers in wire order with original casing.
        reason: HTTP reason phrase.
        error_code: Transport error identifier when ``transport_ok`` is False.
        error_message: Transport error description.
        attempts: Number of attempts made.
    """

    transport_ok: bool
    status: int = 0
    body: bytes = b""
    headers: list[tuple[str, str]] = field(default_factory=list)
    reason: str = ""
    error_code: str = ""
    error_message: str = ""
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.transport_ok and 200 <= self.status < 300

    @property
    def label(self) -> str:
        """Short outcome label used in logs and metrics."""
        if not self.transport_ok:
            return "transport_error"
        if self.ok:
            return "ok"
        return f"http_{self.status}"

    def header(self, name: str) -> str | None:
        """First value of header ``name`` (case-insensitive), or None."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    @property
    def header_block(self) -> str:
        """The response status line and headers as one CRLF-separated blob."""
        lines = [f"HTTP/1.1 {self.status} {self.reason}".rstrip()]
        lines.extend(f"{key}: {value}" for key, value in self.headers)
        return "\r\n".join(lines) + "\r\n\r\n"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded, fixed-backoff retry for transient failures.

    Attributes:
        max_attempts: Total tries including the first one.
        backoff: Seconds to wait between attempts.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: float = DEFAULT_BACKOFF

    @staticmethod
    def should_retry(outcome: HttpOutcome) -> bool:
        """Transport failures and 5xx are transient; everything else is final."""
        return not outcome.transport_ok or outcome.status >= 500


class HttpCommand:
    """Issues one HTTP exchange against an AccessInfo target.

    When a signer is given the request is SigV4-signed; without one it is
    sent as plain HTTP. The transport is a blocking ``httpx.Client`` shared
    across commands.

    Attributes:
        access: The target description.
        client: The blocking HTTP client.
        signer: SigV4 signer, or None for unsigned requests.
        retry: Retry policy.
        timeout: Per-request timeout in seconds.
        logger: Logger receiving one line per attempt.
    """

    def __init__(
        self,
        access: AccessInfo,
        client: httpx.Client,
        signer: SigV4Signer | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.access = access
        self.client = client
        self.signer = signer
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def send(
        self,
        verb: str,
        path: str,
        query: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        payload: bytes = b"",
        byte_range: tuple[int, int] | None = None,
    ) -> HttpOutcome:
        """Send the request, retrying transient failures.

        Args:
            verb: HTTP method.
            path: Unencoded request path.
            query: Unencoded query parameters.
            headers: Command-specific headers.
            payload: Request body.
            byte_range: Optional (offset, size) turned into a ``Range`` header.

        Returns:
            The outcome of the last attempt.

        Raises:
            ConfigError: If the target has no usable endpoint or, for a
                signed request, no bucket or credentials.
            InvalidObjectKey: If the path has ``.`` or ``..`` segments;
                like ConfigError, raised before any network activity.
        """
        if self.signer is not None:
            self.access.validate()
        else:
            self.access.validate_endpoint()
        check_path_segments(path)

        extra = dict(headers or {})
        if byte_range is not None:
            offset, size = byte_range
            extra["Range"] = f"bytes={offset}-{offset + size - 1}"
        query = dict(query or {})

        counter = itertools.count(1)

        def attempt() -> HttpOutcome:
            return self._attempt(verb, path, query, extra, payload, next(counter))

        retryer = Retrying(
            stop=stop_after_attempt(max(1, self.retry.max_attempts)),
            wait=wait_fixed(self.retry.backoff),
            retry=retry_if_result(self.retry.should_retry),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=lambda state: metrics.record_retry(verb),
        )
        return retryer(attempt)

    def _attempt(
        self,
        verb: str,
        path: str,
        query: dict[str, str],
        extra: dict[str, str],
        payload: bytes,
        attempt: int,
    ) -> HttpOutcome:
        """Sign and send once. Signing is redone so every attempt has a fresh date."""
        request_headers = {"Host": self.access.host, **extra}
        if self.signer is not None:
            request_headers.update(
                self.signer.sign(
                    self.access,
                    verb,
                    path,
                    query,
                    request_headers,
                    payload_sha256(payload),
                )
            )
        # Bodies are returned as stored; never ask the origin to compress.
        request_headers["Accept-Encoding"] = "identity"

        url = f"{self.access.scheme}://{self.access.host}{uri_encode_path(path)}"
        if query:
            url += "?" + canonical_query_string(query)

        start = time.monotonic()
        try:
            response, body = self._exchange(verb, url, request_headers, payload)
        except httpx.TransportError as exc:
            outcome = HttpOutcome(
                transport_ok=False,
                error_code=type(exc).__name__,
                error_message=str(exc),
                attempts=attempt,
            )
        else:
            outcome = HttpOutcome(
                transport_ok=True,
                status=response.status_code,
                body=body,
                headers=[
                    (key.decode("latin-1"), value.decode("latin-1"))
                    for key, value in response.headers.raw
                ],
                reason=response.reason_phrase,
                attempts=attempt,
            )
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        metrics.record_attempt(verb, outcome.label, len(payload), len(outcome.body))
        log_extra = attempt_fields(verb, path, outcome.status, outcome.label, attempt, duration_ms)
        if outcome.ok:
            self.logger.debug("%s %s -> %s", verb, path, outcome.status, extra=log_extra)
        elif not outcome.transport_ok:
            self.logger.warning(
                "%s %s failed (attempt %d): %s: %s",
                verb,
                path,
                attempt,
                outcome.error_code,
                outcome.error_message,
                extra=log_extra,
            )
        else:
            self.logger.warning(
                "%s %s -> %s (attempt %d)", verb, path, outcome.status, attempt, extra=log_extra
            )
        return outcome

    def _exchange(
        self,
        verb: str,
        url: str,
        headers: dict[str, str],
        payload: bytes,
    ) -> tuple[httpx.Response, bytes]:
        """Send one request and read the body exactly as it came off the wire.

        ``Content-Encoding`` is not undone: an object stored gzip-compressed
        is returned compressed, matching its ``Content-Length``.

        Raises:
            httpx.TransportError: If sending or reading the body fails.
        """
        request = self.client.build_request(
            verb,
            url,
            headers=headers,
            content=payload or None,
            timeout=self.timeout,
        )
        response = self.client.send(request, stream=True)
        try:
            body = b"".join(response.iter_raw())
        finally:
            response.close()
        return response, body
