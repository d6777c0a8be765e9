"""Multipart upload session for one file handle.

State machine::

    IDLE -> ALLOCATING -> UPLOADING -> COMPLETING -> DONE
      \\________________\\____________\\__________-> FAILED

The first non-empty write allocates an UploadId. Written bytes are buffered
and sliced into ``part_size`` parts whenever the buffer exceeds the
threshold. ``close`` sends the remainder as a final part and completes the
upload. Part numbers start at 1 and only advance after the part's ETag has
been recorded, so the manifest is always contiguous.

A failure after allocation leaves the upload open on the server unless
``abort_on_failure`` is set, in which case one AbortMultipartUpload is
issued before the error is surfaced.
"""

import enum
import logging

from s3http.commands import (
    AbortMultipartUpload,
    CompleteMultipartUpload,
    CreateMultipartUpload,
    ObjectTarget,
    UploadPart,
)
from s3http.errors import S3HttpError, error_from_outcome

logger = logging.getLogger(__name__)

# 100 MB parts allow objects up to ~1 TB within S3's 10,000 part limit.
DEFAULT_PART_SIZE = 100_000_000


class UploadState(enum.Enum):
    IDLE = "idle"
    ALLOCATING = "allocating"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    DONE = "done"
    FAILED = "failed"


class MultipartUpload:
    """Buffers writes for one object and drives the S3 multipart lifecycle.

    Not thread-safe: a handle has exactly one writer.

    Attributes:
        target: The object the upload writes to.
        part_size: Flush threshold and size of every part but the last.
        abort_on_failure: Abort the server-side upload when a step fails.
        state: Current UploadState.
        upload_id: The allocated UploadId ("" until allocated).
        next_part_number: Number the next flushed part will get.
        parts: Recorded (part number, ETag) pairs in part order.
    """

    def __init__(
        self,
        target: ObjectTarget,
        part_size: int = DEFAULT_PART_SIZE,
        abort_on_failure: bool = False,
    ) -> None:
        if part_size <= 0:
            raise ValueError("part_size must be positive")
        self.target = target
        self.part_size = part_size
        self.abort_on_failure = abort_on_failure
        self.state = UploadState.IDLE
        self.upload_id = ""
        self.next_part_number = 1
        self.parts: list[tuple[int, str]] = []
        self._buffer = bytearray()
        self._error: S3HttpError | None = None

    @property
    def buffered(self) -> int:
        """Number of bytes waiting to be flushed."""
        return len(self._buffer)

    def write(self, data: bytes) -> int:
        """Append ``data`` to the upload, flushing full parts.

        Returns:
            The number of bytes accepted (always ``len(data)``).

        Raises:
            S3HttpError: If allocation or a part upload fails, or the
                session already failed.
            ValueError: If the session has been closed.
        """
        self._check_writable()
        if not data:
            return 0
        if self.state is UploadState.IDLE:
            self._allocate()

        self._buffer += data
        while len(self._buffer) > self.part_size:
            self._send_part(bytes(self._buffer[: self.part_size]))
            del self._buffer[: self.part_size]
        return len(data)

    def close(self) -> None:
        """Flush the remaining bytes and complete the upload.

        Nothing is sent if no byte was ever written. Closing twice is a no-op.

        Raises:
            S3HttpError: If the final part or the completion fails, or the
                session already failed.
        """
        if self.state is UploadState.DONE:
            return
        if self.state is UploadState.FAILED:
            raise self._error
        if self.state is UploadState.IDLE:
            self.state = UploadState.DONE
            return

        self.state = UploadState.COMPLETING
        if self._buffer:
            self._send_part(bytes(self._buffer))
            self._buffer.clear()
        if self.parts:
            self._complete()
        self.state = UploadState.DONE

    # -- Lifecycle steps -------------------------------------------------------

    def _check_writable(self) -> None:
        if self.state is UploadState.FAILED:
            raise self._error
        if self.state in (UploadState.COMPLETING, UploadState.DONE):
            raise ValueError("write to a closed multipart upload")

    def _allocate(self) -> None:
        self.state = UploadState.ALLOCATING
        command = self.target.command(CreateMultipartUpload)
        outcome = command.execute()
        if not outcome.ok:
            self._fail(error_from_outcome(outcome))
        try:
            self.upload_id = command.upload_id()
        except S3HttpError as exc:
            self._fail(exc)
        logger.info(
            "Started multipart upload %s for %s", self.upload_id, self.target.key
        )
        self.state = UploadState.UPLOADING

    def _send_part(self, payload: bytes) -> None:
        part_number = self.next_part_number
        command = self.target.command(UploadPart)
        outcome = command.execute(payload, part_number, self.upload_id)
        if not outcome.ok:
            self._fail(error_from_outcome(outcome))
        try:
            etag = command.etag()
        except S3HttpError as exc:
            self._fail(exc)
        self.parts.append((part_number, etag))
        self.next_part_number = part_number + 1
        logger.debug(
            "Uploaded part %d (%d bytes) of %s", part_number, len(payload), self.upload_id
        )

    def _complete(self) -> None:
        command = self.target.command(CompleteMultipartUpload)
        outcome = command.execute(self.parts, self.upload_id)
        if not outcome.ok:
            self._fail(error_from_outcome(outcome))
        try:
            command.check()
        except S3HttpError as exc:
            self._fail(exc)
        logger.info(
            "Completed multipart upload %s for %s (%d parts)",
            self.upload_id,
            self.target.key,
            len(self.parts),
        )

    def _fail(self, error: S3HttpError) -> None:
        """Move to FAILED, drop buffered bytes and raise ``error``."""
        self.state = UploadState.FAILED
        self._error = error
        self._buffer.clear()
        if self.upload_id:
            if self.abort_on_failure:
                self._abort()
            else:
                logger.warning(
                    "Multipart upload %s for %s left incomplete after failure: %s",
                    self.upload_id,
                    self.target.key,
                    error.message,
                )
        raise error

    def _abort(self) -> None:
        outcome = self.target.command(AbortMultipartUpload).execute(self.upload_id)
        if outcome.ok:
            logger.info("Aborted multipart upload %s", self.upload_id)
        else:
            logger.warning(
                "Failed to abort multipart upload %s: %s",
                self.upload_id,
                error_from_outcome(outcome).message,
            )
