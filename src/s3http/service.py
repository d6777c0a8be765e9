"""Process-wide service context and per-object file handles.

A ``ServiceContext`` is built once per process from configuration. It owns
the shared HTTP client, the signer and the export table, and hands out file
handles. Every operation receives the context explicitly; there is no
module-level singleton.

Two handle variants share one interface (open/read/write/stat/close):

    S3File    signed S3 commands, multipart uploads for writes
    HTTPFile  unsigned HEAD/GET against a plain HTTP origin, read-only

A handle is used by one caller at a time; distinct handles may be used
from different threads concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
import yaml
from pydantic import ValidationError

from s3http import metrics
from s3http.access import AccessInfo
from s3http.auth import SigV4Signer
from s3http.commands import Download, Head, ObjectTarget, Upload
from s3http.config import BACKEND_HTTP, BACKEND_S3, ExportConfig, S3HttpConfig, load_config
from s3http.errors import (
    ConfigError,
    ObjectNotFound,
    ReadOnlyError,
    S3HttpError,
    error_from_outcome,
)
from s3http.headers import ObjectStat, parse_object_stat
from s3http.http import RetryPolicy, check_path_segments
from s3http.multipart import MultipartUpload

logger = logging.getLogger(__name__)


class FileHandle(Protocol):
    """Capability set every file variant provides."""

    def read(self, offset: int, length: int) -> bytes: ...

    def write(self, data: bytes) -> int: ...

    def stat(self) -> ObjectStat: ...

    def close(self) -> None: ...


class _ObjectFile:
    """Read and stat shared by both variants."""

    def __init__(self, target: ObjectTarget) -> None:
        self.target = target
        self.closed = False

    @property
    def key(self) -> str:
        return self.target.key

    def open(self, for_write: bool = False) -> None:
        """Check that a file opened for reading exists.

        Raises:
            S3HttpError: The status-mapped error if the HEAD fails.
        """
        if not for_write:
            self.stat()

    def stat(self) -> ObjectStat:
        """Size and modification time from a HEAD request.

        Raises:
            ObjectNotFound: On 404.
            PermissionDenied: On 403.
            ProtocolError: On any other non-2xx status.
            TransportError: If no response was received.
            ParseError: If the headers lack a valid Content-Length.
        """
        outcome = self.target.command(Head).execute()
        if not outcome.ok:
            error = error_from_outcome(outcome)
            logger.warning("HEAD %s failed: %s", self.key, error.message)
            raise error
        return parse_object_stat(outcome.header_block)

    def read(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes at ``offset``.

        Returns ``b""`` at or past the end of the object.
        """
        if length <= 0:
            return b""
        outcome = self.target.command(Download).execute(offset, length)
        if outcome.transport_ok and outcome.status == 416:
            return b""
        if not outcome.ok:
            error = error_from_outcome(outcome)
            logger.warning("GET %s [%d+%d] failed: %s", self.key, offset, length, error.message)
            raise error
        if outcome.status == 200:
            # Origin ignored the Range header and sent the whole object.
            return outcome.body[offset : offset + length]
        return outcome.body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class S3File(_ObjectFile):
    """A handle on one S3 object.

    Writes go through a lazily created MultipartUpload; ``close`` completes
    it. The upload session is dropped when the handle closes, whether or
    not completion succeeded.
    """

    def __init__(
        self,
        target: ObjectTarget,
        part_size: int,
        abort_on_failure: bool = False,
    ) -> None:
        super().__init__(target)
        self.part_size = part_size
        self.abort_on_failure = abort_on_failure
        self._upload: MultipartUpload | None = None

    @property
    def upload(self) -> MultipartUpload | None:
        return self._upload

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to a closed file")
        if self._upload is None:
            self._upload = MultipartUpload(
                self.target,
                part_size=self.part_size,
                abort_on_failure=self.abort_on_failure,
            )
        return self._upload.write(data)

    def put(self, data: bytes) -> None:
        """Upload ``data`` as the whole object in one PUT."""
        outcome = self.target.command(Upload).execute(data)
        if not outcome.ok:
            raise error_from_outcome(outcome)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        upload, self._upload = self._upload, None
        if upload is not None:
            upload.close()


class HTTPFile(_ObjectFile):
    """A read-only handle on an object served by a plain HTTP origin."""

    def write(self, data: bytes) -> int:
        raise ReadOnlyError(f"HTTP export does not accept writes: {self.key}")

    def put(self, data: bytes) -> None:
        raise ReadOnlyError(f"HTTP export does not accept writes: {self.key}")

    def close(self) -> None:
        self.closed = True


@dataclass
class Export:
    prefix: str
    config: ExportConfig
    access: AccessInfo


class ServiceContext:
    """Shared state for every file handle in the process.

    Attributes:
        config: The loaded configuration.
        client: Blocking HTTP client shared by all handles.
        signer: SigV4 signer shared by all S3 handles.
        retry: Retry policy applied to every request.
    """

    def __init__(
        self,
        config: S3HttpConfig,
        client: httpx.Client | None = None,
        signer: SigV4Signer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Build the context and resolve every export's AccessInfo.

        Raises:
            ConfigError: On an unknown backend or unreadable key file.
        """
        self.config = config
        self.signer = signer or SigV4Signer()
        self.retry = RetryPolicy(
            max_attempts=config.client.max_attempts,
            backoff=config.client.retry_backoff,
        )
        self.logger = logger

        exports = []
        for export in config.exports:
            if export.backend not in (BACKEND_S3, BACKEND_HTTP):
                raise ConfigError(f"Unknown backend {export.backend!r} for {export.path}")
            prefix = "/" + export.path.strip("/")
            exports.append(Export(prefix=prefix, config=export, access=export.access_info()))
        # Longest prefix wins.
        self._exports = sorted(exports, key=lambda e: len(e.prefix), reverse=True)

        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=config.client.timeout)

    def resolve(self, path: str) -> tuple[Export, str]:
        """Split ``/<export path>/<object key>`` into its export and key.

        Raises:
            ObjectNotFound: If no export matches or the key is empty.
        """
        normalized = "/" + path.lstrip("/")
        for export in self._exports:
            if export.prefix == "/":
                key = normalized[1:]
            elif normalized.startswith(export.prefix + "/"):
                key = normalized[len(export.prefix) + 1 :]
            else:
                continue
            if not key:
                raise ObjectNotFound(status=0, message=f"No object key in path: {path}")
            return export, key
        raise ObjectNotFound(status=0, message=f"No export configured for path: {path}")

    def access_info(self, path: str) -> tuple[AccessInfo, str]:
        """The AccessInfo and object key a path resolves to."""
        export, key = self.resolve(path)
        return export.access, key

    def open(self, path: str, for_write: bool = False) -> S3File | HTTPFile:
        """Open a handle on the object at ``path``.

        Raises:
            ObjectNotFound: If the path does not resolve, or (for reads) the
                object does not exist.
            ConfigError: If the export has no usable service URL or, for
                S3, no bucket or credentials.
            InvalidObjectKey: If the key has ``.`` or ``..`` segments.
            S3HttpError: Any other status-mapped error from the existence check.
        """
        export, key = self.resolve(path)
        check_path_segments(key)
        if export.config.backend == BACKEND_HTTP:
            export.access.validate_endpoint()
            handle: S3File | HTTPFile = HTTPFile(self._target(export.access, key, signed=False))
        else:
            export.access.validate()
            handle = S3File(
                self._target(export.access, key, signed=True),
                part_size=self.config.client.part_size,
                abort_on_failure=self.config.client.abort_on_failure,
            )
        handle.open(for_write=for_write)
        return handle

    def _target(self, access: AccessInfo, key: str, signed: bool) -> ObjectTarget:
        return ObjectTarget(
            access=access,
            key=key,
            client=self.client,
            signer=self.signer if signed else None,
            retry=self.retry,
            timeout=self.config.client.timeout,
            logger=self.logger,
        )

    def close(self) -> None:
        """Release the HTTP client if this context created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> ServiceContext:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass
class InitResult:
    """Outcome of ``initialize``: a context, or the error that prevented one."""

    context: ServiceContext | None = None
    error: S3HttpError | None = None

    @property
    def ok(self) -> bool:
        return self.context is not None


def initialize(
    config: S3HttpConfig | Path,
    client: httpx.Client | None = None,
) -> InitResult:
    """Build the process-wide ServiceContext without raising.

    Loads the configuration if given a path and registers metrics when they
    are enabled. The caller decides whether a failure aborts startup.
    """
    try:
        if isinstance(config, Path):
            config = load_config(config)
        if config.metrics.enabled:
            metrics.init_metrics()
        context = ServiceContext(config, client=client)
    except S3HttpError as exc:
        logger.error("Initialization failed: %s", exc.message)
        return InitResult(error=exc)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        logger.error("Initialization failed: %s", exc)
        return InitResult(error=ConfigError(str(exc)))
    return InitResult(context=context)
