"""
Configuration for kvspine stores.

Two layers, both pydantic:

- :class:`StoreOptions`: the per-instance value passed to a store
  constructor. Every field defaults to ``None`` ("not set");
  :func:`merge_options` fills unset fields from :data:`DEFAULT_OPTIONS`
  and returns a new object. Nothing here is mutable process-wide state.
- :class:`KVSettings`: environment-driven settings (prefix ``KVSPINE_``,
  ``.env`` support) for services that pick their backend from the
  environment.

Examples:
    >>> opts = merge_options(StoreOptions(directory="/tmp/kv"))
    >>> str(opts.directory), opts.filename_extension, opts.gc_interval
    ('/tmp/kv', 'json', 30.0)

    >>> merge_options(StoreOptions(filename_extension="")).filename_extension
    ''
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvspine.codec import Codec

StoreKind = Literal["map", "syncmap", "file", "redis", "sql"]


class StoreOptions(BaseModel):
    """Per-store options. ``None`` means "use the default"."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    # ── Common ───────────────────────────────────────────────────
    codec: str | Codec | None = None
    gc_interval: float | None = Field(
        default=None,
        description="Seconds between sweeps; 0 means default, negative disables",
    )

    # ── File backend ─────────────────────────────────────────────
    directory: Path | None = None
    filename_extension: str | None = Field(
        default=None,
        description='Cosmetic filename extension; "" disables it',
    )

    # ── Redis backend ────────────────────────────────────────────
    redis_url: str | None = None
    key_prefix: str | None = None

    # ── SQL backend ──────────────────────────────────────────────
    database_url: str | None = None
    table_name: str | None = None


DEFAULT_OPTIONS = StoreOptions(
    codec="json",
    gc_interval=30.0,
    directory=Path("kvs"),
    filename_extension="json",
    redis_url="redis://localhost:6379/0",
    key_prefix="kvspine:",
    database_url="sqlite:///kvspine.db",
    table_name="kvspine_items",
)


def merge_options(
    options: StoreOptions | None = None,
    defaults: StoreOptions = DEFAULT_OPTIONS,
) -> StoreOptions:
    """Return ``options`` with every unset field taken from ``defaults``."""
    if options is None:
        return defaults
    overrides = {
        name: getattr(options, name)
        for name in StoreOptions.model_fields
        if getattr(options, name) is not None
    }
    return defaults.model_copy(update=overrides)


class KVSettings(BaseSettings):
    """Settings loaded from ``KVSPINE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KVSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    store_type: StoreKind = "file"
    codec: Literal["json", "pickle"] = "json"
    gc_interval: float = 30.0

    # File
    directory: Path = Path("kvs")
    filename_extension: str = "json"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "kvspine:"

    # SQL
    database_url: str = "sqlite:///kvspine.db"
    table_name: str = "kvspine_items"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    def to_options(self) -> StoreOptions:
        return StoreOptions(
            codec=self.codec,
            gc_interval=self.gc_interval,
            directory=self.directory,
            filename_extension=self.filename_extension,
            redis_url=self.redis_url,
            key_prefix=self.key_prefix,
            database_url=self.database_url,
            table_name=self.table_name,
        )


# Global settings instance
_settings: KVSettings | None = None


def get_settings() -> KVSettings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = KVSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None


__all__ = [
    "StoreKind",
    "StoreOptions",
    "DEFAULT_OPTIONS",
    "merge_options",
    "KVSettings",
    "get_settings",
    "reset_settings",
]
