"""Target description for one remote object store."""

from dataclasses import dataclass
from urllib.parse import urlsplit

from s3http.errors import ConfigError

URL_STYLE_PATH = "path"
URL_STYLE_VIRTUAL = "virtual"


@dataclass(frozen=True)
class AccessInfo:
    """Immutable description of where an object lives and how to reach it.

    Attributes:
        service_url: Endpoint URL, e.g. ``https://s3.us-east-1.amazonaws.com``.
        region: Signing region.
        bucket: Bucket name; required before any S3 command executes.
        access_key: Access key ID.
        secret_key: Secret access key.
        url_style: ``path`` (``host/bucket/key``) or ``virtual``
            (``bucket.host/key``).
    """

    service_url: str
    region: str = "us-east-1"
    bucket: str = ""
    access_key: str = ""
    secret_key: str = ""
    url_style: str = URL_STYLE_PATH

    def __repr__(self) -> str:
        return (
            f"AccessInfo(service_url={self.service_url!r}, region={self.region!r}, "
            f"bucket={self.bucket!r}, url_style={self.url_style!r})"
        )

    def validate_endpoint(self) -> None:
        """Check that ``service_url`` names a scheme and host.

        Raises:
            ConfigError: If the service URL is missing or has no host.
        """
        parts = urlsplit(self.service_url)
        if not parts.netloc or parts.scheme not in ("http", "https"):
            raise ConfigError(f"Service URL is not configured: {self.service_url!r}")

    def validate(self) -> None:
        """Check the fields every signed S3 command needs.

        Raises:
            ConfigError: If the endpoint, the bucket or either credential is
                missing, or the URL style is unknown.
        """
        self.validate_endpoint()
        if not self.bucket:
            raise ConfigError("Bucket name is not configured")
        if not self.access_key or not self.secret_key:
            raise ConfigError("S3 credentials are not configured")
        if self.url_style not in (URL_STYLE_PATH, URL_STYLE_VIRTUAL):
            raise ConfigError(f"Unknown URL style: {self.url_style}")

    @property
    def scheme(self) -> str:
        return urlsplit(self.service_url).scheme or "https"

    @property
    def host(self) -> str:
        """The Host header value for requests against this target."""
        netloc = urlsplit(self.service_url).netloc or self.service_url
        if self.url_style == URL_STYLE_VIRTUAL and self.bucket:
            return f"{self.bucket}.{netloc}"
        return netloc

    def object_path(self, key: str) -> str:
        """Unencoded request path for ``key`` under this target."""
        key = key.lstrip("/")
        base = urlsplit(self.service_url).path.rstrip("/")
        if self.url_style == URL_STYLE_VIRTUAL or not self.bucket:
            return f"{base}/{key}"
        return f"{base}/{self.bucket}/{key}"
