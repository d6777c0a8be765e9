"""Configuration loading and Pydantic models for s3http."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from s3http.access import URL_STYLE_PATH, AccessInfo
from s3http.errors import ConfigError
from s3http.http import DEFAULT_BACKOFF, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT
from s3http.multipart import DEFAULT_PART_SIZE

BACKEND_S3 = "s3"
BACKEND_HTTP = "http"


class ClientConfig(BaseModel):
    """Transport, retry and upload settings shared by every export."""

    timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_backoff: float = DEFAULT_BACKOFF
    part_size: int = DEFAULT_PART_SIZE
    abort_on_failure: bool = False


class LoggingConfig(BaseModel):
    """Process logging configuration."""

    level: str = "INFO"
    format: str = "text"


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = False


class ExportConfig(BaseModel):
    """One exported path prefix and the store behind it."""

    path: str
    backend: str = BACKEND_S3
    service_url: str = ""
    region: str = "us-east-1"
    bucket: str = ""
    url_style: str = URL_STYLE_PATH
    access_key: str = ""
    secret_key: str = ""
    access_key_file: str = ""
    secret_key_file: str = ""

    def access_info(self) -> AccessInfo:
        """Build the AccessInfo for this export, reading key files if set.

        Raises:
            ConfigError: If a key file cannot be read.
        """
        return AccessInfo(
            service_url=self.service_url,
            region=self.region,
            bucket=self.bucket,
            access_key=self.access_key or _read_key_file(self.access_key_file),
            secret_key=self.secret_key or _read_key_file(self.secret_key_file),
            url_style=self.url_style,
        )


class S3HttpConfig(BaseModel):
    """Top-level s3http configuration."""

    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    exports: list[ExportConfig] = Field(default_factory=list)


def _read_key_file(path: str) -> str:
    """Return the trimmed content of a credential file ("" if no path)."""
    if not path:
        return ""
    try:
        return Path(path).read_text().strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read credential file {path}: {exc.strerror}")


def _parse_client(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the client section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {
        "timeout": data.get("timeout", DEFAULT_TIMEOUT),
        "max_attempts": data.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
        "retry_backoff": data.get("retry_backoff", DEFAULT_BACKOFF),
        "part_size": data.get("part_size", DEFAULT_PART_SIZE),
        "abort_on_failure": data.get("abort_on_failure", False),
    }


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {"enabled": data.get("enabled", False)}


def _parse_exports(data: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Parse the exports list from YAML data.

    Handles the nested credentials block: credentials.access_key_file ->
    access_key_file, etc.
    """
    if not data:
        return []
    exports = []
    for entry in data:
        result = {k: v for k, v in entry.items() if k != "credentials"}
        credentials = entry.get("credentials")
        if isinstance(credentials, dict):
            for name in ("access_key", "secret_key", "access_key_file", "secret_key_file"):
                if name in credentials:
                    result[name] = credentials[name]
        exports.append(result)
    return exports


def load_config(path: Path) -> S3HttpConfig:
    """Load an S3HttpConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated S3HttpConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return S3HttpConfig(
        client=ClientConfig(**_parse_client(raw.get("client"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
        exports=[ExportConfig(**e) for e in _parse_exports(raw.get("exports"))],
    )
