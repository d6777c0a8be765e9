"""S3 XML request rendering and response parsing helpers for s3http."""

import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape as _sax_escape

from s3http.errors import ParseError


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value."""
    return _sax_escape(str(value))


def _namespace(root: ET.Element) -> str:
    """Return the ``{uri}`` namespace prefix of an element, or ``""``."""
    if root.tag.startswith("{"):
        return root.tag[: root.tag.index("}") + 1]
    return ""


def _parse(body: bytes, what: str) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as exc:
        raise ParseError(f"Malformed {what} XML: {exc}")


def render_complete_multipart_upload(parts: list[tuple[int, str]]) -> str:
    """Render the CompleteMultipartUpload request body.

    Args:
        parts: (part number, ETag) pairs. ETags are sent verbatim, quotes
            included. Parts are emitted in ascending part-number order.

    Returns:
        An XML string with root ``CompleteMultipartUpload``.
    """
    lines = ["<CompleteMultipartUpload>"]
    for part_number, etag in sorted(parts, key=lambda p: p[0]):
        lines.append(
            f"<Part><PartNumber>{part_number}</PartNumber>"
            f"<ETag>{_escape_xml(etag)}</ETag></Part>"
        )
    lines.append("</CompleteMultipartUpload>")
    return "\n".join(lines)


def parse_initiate_multipart_upload(body: bytes) -> str:
    """Extract the UploadId from an InitiateMultipartUploadResult body.

    Raises:
        ParseError: If the body is not XML or carries no UploadId.
    """
    root = _parse(body, "InitiateMultipartUploadResult")
    ns = _namespace(root)
    elem = root.find(f"{ns}UploadId")
    if elem is None or not (elem.text or "").strip():
        raise ParseError("InitiateMultipartUploadResult has no UploadId")
    return elem.text.strip()


def parse_complete_multipart_upload(body: bytes) -> dict[str, str]:
    """Check a CompleteMultipartUpload response body.

    S3 may answer 200 and still report a failure in an ``Error`` document,
    so the root element decides success.

    Returns:
        The ``Location``, ``Bucket``, ``Key`` and ``ETag`` fields present in
        the result.

    Raises:
        ParseError: If the body is not a CompleteMultipartUploadResult.
    """
    root = _parse(body, "CompleteMultipartUploadResult")
    ns = _namespace(root)
    tag = root.tag[len(ns):]
    if tag == "Error":
        fields = parse_error(body)
        raise ParseError(
            f"CompleteMultipartUpload failed: {fields.get('Code', '')} {fields.get('Message', '')}".strip()
        )
    if tag != "CompleteMultipartUploadResult":
        raise ParseError(f"Unexpected CompleteMultipartUpload response root: {tag}")
    result = {}
    for name in ("Location", "Bucket", "Key", "ETag"):
        elem = root.find(f"{ns}{name}")
        if elem is not None and elem.text is not None:
            result[name] = elem.text
    return result


def parse_error(body: bytes) -> dict[str, str]:
    """Best-effort extraction of ``Code``/``Message`` from an S3 error body.

    Returns an empty dict if the body is not an S3 error document.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return {}
    ns = _namespace(root)
    fields = {}
    for child in root:
        if child.text is not None:
            fields[child.tag[len(ns):]] = child.text
    return fields
