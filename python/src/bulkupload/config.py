"""Configuration loading and Pydantic models for bulkupload."""

from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bulkupload.errors import ConfigurationError
from bulkupload.sizes import KIB, MIB, parse_bytes


class TransferConfig(BaseModel):
    """Worker pool and copy tuning."""

    model_config = ConfigDict(validate_assignment=True)

    concurrency: int = Field(default=24, ge=1)
    buffer_size: int = Field(default=512 * KIB, ge=1)
    chunk_size: int = Field(default=16 * MIB, ge=0)
    gc_interval: int = Field(default=0, ge=0)
    shuffle: bool = False
    verbose: bool = False

    @field_validator("buffer_size", "chunk_size", mode="before")
    @classmethod
    def _parse_size(cls, value: Any) -> Any:
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            try:
                return parse_bytes(value)
            except ConfigurationError as exc:
                raise ValueError(exc.message) from exc
        return value


class SourceConfig(BaseModel):
    """Where the files to upload come from.

    Exactly one of ``directory`` and ``list_file`` must be set by the time
    a run starts; see :func:`check_source`.
    """

    directory: str = ""
    list_file: str = ""


class StorageConfig(BaseModel):
    """Object store backend selection."""

    model_config = ConfigDict(validate_assignment=True)

    backend: str = "gcp"
    gcp_project: str = ""

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("gcp", "memory"):
            raise ValueError(f"unknown storage backend: {value}")
        return value


class LoggingConfig(BaseModel):
    """Log level and output format."""

    model_config = ConfigDict(validate_assignment=True)

    level: str = "INFO"
    format: str = "text"

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in ("text", "json"):
            raise ValueError(f"log format must be 'text' or 'json': {value}")
        return value


class MetricsConfig(BaseModel):
    """Prometheus textfile output."""

    textfile: str = ""


class UploadConfig(BaseModel):
    """Top-level bulkupload configuration."""

    transfer: TransferConfig = Field(default_factory=TransferConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


class Destination(BaseModel):
    """A parsed ``scheme://bucket/prefix`` destination URI."""

    scheme: str
    bucket: str
    prefix: str = ""

    def url(self, key: str) -> str:
        """Return the fully-qualified URL of an object in this bucket."""
        return f"{self.scheme}://{self.bucket}/{key}"

    def __str__(self) -> str:
        return self.url(self.prefix)


def parse_destination(uri: str, scheme: str) -> Destination:
    """Parse and validate a destination URI.

    Args:
        uri: The destination, e.g. ``gs://bucket/some/prefix``.
        scheme: The scheme the selected object store accepts.

    Returns:
        The parsed destination with leading and trailing slashes
        stripped from the prefix.

    Raises:
        ConfigurationError: If the URI is malformed, has no bucket, or its
            scheme does not match ``scheme``.
    """
    parts = urlsplit(uri)
    if not parts.scheme:
        raise ConfigurationError(f"parse dest: invalid URI: {uri!r}")
    if parts.scheme != scheme:
        raise ConfigurationError(f"dest must start with {scheme}://: {parts.scheme}")
    if not parts.netloc:
        raise ConfigurationError(f"parse dest: missing bucket: {uri!r}")
    return Destination(
        scheme=parts.scheme,
        bucket=parts.netloc,
        prefix=parts.path.strip("/"),
    )


def check_source(source: SourceConfig) -> None:
    """Ensure exactly one of directory and list file is selected.

    Raises:
        ConfigurationError: If neither or both are set.
    """
    if not source.directory and not source.list_file:
        raise ConfigurationError("target not found: please use either -l or -d")
    if source.directory and source.list_file:
        raise ConfigurationError("cannot use both -l and -d")


def _parse_transfer(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the transfer section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    keys = ("concurrency", "buffer_size", "chunk_size", "gc_interval", "shuffle", "verbose")
    return {k: data[k] for k in keys if k in data}


def _parse_source(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the source section from YAML data."""
    if data is None:
        return {}
    return {
        "directory": data.get("directory") or "",
        "list_file": data.get("list_file") or "",
    }


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.gcp.project -> gcp_project
    """
    if data is None:
        return {}
    result: dict[str, Any] = {"backend": data.get("backend", "gcp")}
    gcp_section = data.get("gcp")
    if isinstance(gcp_section, dict):
        result["gcp_project"] = gcp_section.get("project") or ""
    return result


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
    return {"textfile": data.get("textfile") or ""}


def load_config(path: Path) -> UploadConfig:
    """Load an UploadConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated UploadConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ConfigurationError: If a value fails validation.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    try:
        return UploadConfig(
            transfer=TransferConfig(**_parse_transfer(raw.get("transfer"))),
            source=SourceConfig(**_parse_source(raw.get("source"))),
            storage=StorageConfig(**_parse_storage(raw.get("storage"))),
            logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
            metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config {path}: {exc}") from exc
