"""Object-storage commands built on HttpCommand.

Each command fixes the verb, path, query and headers of one S3 operation
and knows how to read its response. Commands report the raw outcome; they
never map HTTP status to a domain error, that is left to the caller.

Head and Download also work unsigned (``signer=None``) against a plain
HTTP origin.
"""

import logging
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from s3http.access import AccessInfo
from s3http.auth import SigV4Signer
from s3http.errors import ParseError
from s3http.http import DEFAULT_TIMEOUT, HttpCommand, HttpOutcome, RetryPolicy
from s3http.xml_utils import (
    parse_complete_multipart_upload,
    parse_initiate_multipart_upload,
    render_complete_multipart_upload,
)


class ObjectCommand(HttpCommand):
    """An HttpCommand bound to one object key.

    Attributes:
        key: The object key within the target.
        outcome: Outcome of the last ``execute`` call, or None.
    """

    def __init__(
        self,
        access: AccessInfo,
        key: str,
        client: httpx.Client,
        signer: SigV4Signer | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            access, client, signer=signer, retry=retry, timeout=timeout, logger=logger
        )
        self.key = key
        self.outcome: HttpOutcome | None = None

    @property
    def path(self) -> str:
        return self.access.object_path(self.key)

    def _send(self, verb: str, **kwargs) -> HttpOutcome:
        self.outcome = self.send(verb, self.path, **kwargs)
        return self.outcome


class Head(ObjectCommand):
    """HEAD /bucket/key. The caller reads ``outcome.header_block``."""

    def execute(self) -> HttpOutcome:
        return self._send("HEAD")


class Download(ObjectCommand):
    """Ranged GET /bucket/key returning raw body bytes."""

    def execute(self, offset: int, size: int) -> HttpOutcome:
        """Fetch ``size`` bytes starting at ``offset``.

        A zero ``size`` sends no Range header and fetches the whole object.
        """
        byte_range = (offset, size) if size > 0 else None
        return self._send("GET", byte_range=byte_range)


class Upload(ObjectCommand):
    """Single-shot PUT /bucket/key."""

    def execute(self, payload: bytes) -> HttpOutcome:
        return self._send("PUT", payload=payload)


class CreateMultipartUpload(ObjectCommand):
    """POST /bucket/key?uploads, allocating a multipart UploadId."""

    def execute(self) -> HttpOutcome:
        return self._send("POST", query={"uploads": ""})

    def upload_id(self) -> str:
        """The UploadId from the last successful response.

        Raises:
            ParseError: If there is no response or it carries no UploadId.
        """
        if self.outcome is None:
            raise ParseError("CreateMultipartUpload has not been sent")
        return parse_initiate_multipart_upload(self.outcome.body)


class UploadPart(ObjectCommand):
    """PUT /bucket/key?partNumber=N&uploadId=U."""

    def execute(self, payload: bytes, part_number: int, upload_id: str) -> HttpOutcome:
        return self._send(
            "PUT",
            query={"partNumber": str(part_number), "uploadId": upload_id},
            payload=payload,
        )

    def etag(self) -> str:
        """The part's ETag header, quotes preserved.

        Raises:
            ParseError: If there is no response or it carries no ETag.
        """
        if self.outcome is None:
            raise ParseError("UploadPart has not been sent")
        value = self.outcome.header("ETag")
        if not value:
            raise ParseError("UploadPart response has no ETag header")
        return value.strip()


class CompleteMultipartUpload(ObjectCommand):
    """POST /bucket/key?uploadId=U with the part manifest."""

    def execute(self, parts: list[tuple[int, str]], upload_id: str) -> HttpOutcome:
        """Send the manifest.

        Args:
            parts: (part number, ETag) pairs; sent in ascending part order.
            upload_id: The multipart upload identifier.
        """
        body = render_complete_multipart_upload(parts).encode("utf-8")
        return self._send(
            "POST",
            query={"uploadId": upload_id},
            headers={"Content-Type": "application/xml"},
            payload=body,
        )

    def check(self) -> dict[str, str]:
        """Validate a 2xx completion response body.

        Raises:
            ParseError: If the body is malformed or is an S3 error document.
        """
        if self.outcome is None:
            raise ParseError("CompleteMultipartUpload has not been sent")
        if not self.outcome.body.strip():
            return {}
        return parse_complete_multipart_upload(self.outcome.body)


class AbortMultipartUpload(ObjectCommand):
    """DELETE /bucket/key?uploadId=U."""

    def execute(self, upload_id: str) -> HttpOutcome:
        return self._send("DELETE", query={"uploadId": upload_id})


C = TypeVar("C", bound=ObjectCommand)


@dataclass(frozen=True)
class ObjectTarget:
    """Everything needed to build commands for one object.

    Built once per file handle and shared by every command it issues.
    """

    access: AccessInfo
    key: str
    client: httpx.Client
    signer: SigV4Signer | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = DEFAULT_TIMEOUT
    logger: logging.Logger | None = None

    def command(self, cls: type[C]) -> C:
        """Instantiate command class ``cls`` against this target."""
        return cls(
            self.access,
            self.key,
            self.client,
            signer=self.signer,
            retry=self.retry,
            timeout=self.timeout,
            logger=self.logger,
        )
