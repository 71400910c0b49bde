"""
Configuration management for docshadow.

Settings are read from environment variables (prefix DOCSHADOW_) through
pydantic-settings and handed to the library as typed, frozen option
objects.

Invariants:
    - All settings have sensible defaults for local development
    - Link field names are validated before any model is registered
    - Secrets (the MongoDB URL) are never logged

How to change safely:
    - Add new settings with defaults that keep existing behaviour
    - Keep the flat Settings fields and the dataclass builders in sync
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings

from .errors import ConfigurationError
from .schema.types import ID_FIELD

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    MONGO = "mongo"


@dataclass(frozen=True)
class VersioningOptions:
    """Options for one versioned model.

    Attributes:
        version_id_field: Field on the active document pointing at its version
        version_of_id_field: Field on a version record pointing at its active document
        append_only: Every write creates a new version; no token check
        delete_flag: Shadow field set on the terminal version by delete_original
        collection: Collection name override for the shadow model
        hook_wanted: Enable versioned_save (snapshot on every full-document save)
    """

    version_id_field: str = "versionId"
    version_of_id_field: str = "versionOfId"
    append_only: bool = False
    delete_flag: str | None = None
    collection: str | None = None
    hook_wanted: bool = False

    def validate(self) -> None:
        """Validate option consistency.

        Raises:
            ConfigurationError: If a link field name is empty, reserved or reused.
        """
        errors = []
        names = {
            "version_id_field": self.version_id_field,
            "version_of_id_field": self.version_of_id_field,
        }
        if self.delete_flag is not None:
            names["delete_flag"] = self.delete_flag

        for option, value in names.items():
            if not value:
                errors.append(f"{option} cannot be empty")
            elif value == ID_FIELD:
                errors.append(f"{option} cannot be the primary identifier '{ID_FIELD}'")

        values = [v for v in names.values() if v]
        if len(values) != len(set(values)):
            errors.append(f"link field names must be distinct, got {sorted(values)}")

        if errors:
            raise ConfigurationError(
                f"Invalid versioning options: {'; '.join(errors)}", errors=errors
            )


@dataclass(frozen=True)
class StorageConfig:
    """Local SQLite storage configuration.

    Attributes:
        data_dir: Directory for SQLite database files
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    data_dir: str = "./data"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -64000  # 64MB


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"


class Settings(BaseSettings):
    """docshadow configuration loaded from environment."""

    backend: StoreBackend = Field(default=StoreBackend.MEMORY, description="Document store backend")

    # Versioning
    version_id_field: str = Field(default="versionId")
    version_of_id_field: str = Field(default="versionOfId")
    append_only: bool = Field(default=False, description="Always create a new version, no token check")
    delete_flag: str | None = Field(default=None, description="Shadow field marking deleted lineages")
    shadow_collection: str | None = Field(default=None, description="Shadow collection name override")
    hook_wanted: bool = Field(default=False, description="Enable versioned_save")

    # SQLite
    data_dir: str = Field(default="./data")
    sqlite_wal_mode: bool = Field(default=True)
    sqlite_busy_timeout_ms: int = Field(default=5000)
    sqlite_cache_size: int = Field(default=-64000)

    # MongoDB
    mongo_url: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="docshadow")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    model_config = {"env_prefix": "DOCSHADOW_"}

    def versioning_options(self) -> VersioningOptions:
        """Build validated versioning options."""
        options = VersioningOptions(
            version_id_field=self.version_id_field,
            version_of_id_field=self.version_of_id_field,
            append_only=self.append_only,
            delete_flag=self.delete_flag,
            collection=self.shadow_collection,
            hook_wanted=self.hook_wanted,
        )
        options.validate()
        return options

    def storage_config(self) -> StorageConfig:
        """Build SQLite storage configuration."""
        return StorageConfig(
            data_dir=self.data_dir,
            wal_mode=self.sqlite_wal_mode,
            busy_timeout_ms=self.sqlite_busy_timeout_ms,
            cache_size_pages=self.sqlite_cache_size,
        )

    def observability_config(self) -> ObservabilityConfig:
        """Build logging configuration."""
        return ObservabilityConfig(log_level=self.log_level, log_format=self.log_format)

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "docshadow configuration loaded",
            extra={
                "backend": self.backend.value,
                "version_id_field": self.version_id_field,
                "version_of_id_field": self.version_of_id_field,
                "append_only": self.append_only,
                "delete_flag": self.delete_flag,
                "shadow_collection": self.shadow_collection,
                "data_dir": self.data_dir if self.backend == StoreBackend.SQLITE else None,
                "mongo_database": self.mongo_database
                if self.backend == StoreBackend.MONGO
                else None,
                "log_level": self.log_level,
            },
        )
