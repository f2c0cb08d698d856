from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HWACCEL_MODES = {"auto", "off"}


class Settings(BaseSettings):
    """
    Runtime configuration for subburn.

    All settings are loaded from environment variables with the
    `SUBBURN_` prefix and optional `.env` support.

    This class is intentionally flat and explicit to keep runtime
    behavior predictable and debuggable.
    """

    model_config = SettingsConfigDict(
        env_prefix="SUBBURN_",
        env_file=".env",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Filesystem
    # ------------------------------------------------------------------
    workdir: str = Field(
        default=".subburn",
        description="Root directory for exports and per-job temp files.",
    )
    uploads_dir: str = Field(
        default=".subburn/uploads",
        description="Directory where completed uploads are stored by upload id.",
    )
    font_path: str | None = Field(
        default=None,
        description="Font file copied next to each subtitle asset (system fallback when unset).",
    )

    # ------------------------------------------------------------------
    # Progress store
    # ------------------------------------------------------------------
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the shared progress store; in-memory when unset.",
    )
    export_ttl_seconds: int = Field(
        default=3600,
        description="TTL of export progress records (also the download window).",
    )
    download_token_ttl_seconds: int = Field(
        default=300,
        description="TTL of one-time download handoff tokens.",
    )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    max_concurrent_exports: int = Field(
        default=2,
        description="Global cap on simultaneous transcodes; excess exports queue.",
    )
    large_file_mb: int = Field(
        default=200,
        description="Source size above which a faster preset is forced.",
    )
    hwaccel: str = Field(
        default="auto",
        description="Hardware encode path: auto (probe once) or off.",
    )
    vaapi_device: str = Field(
        default="/dev/dri/renderD128",
        description="VAAPI render node probed for accelerated encoding.",
    )
    hw_probe_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for the synthetic hardware encode probe.",
    )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    cleanup_grace_seconds: float = Field(
        default=2.0,
        description="Delay before deleting a delivered artifact.",
    )
    chunk_size_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Chunk size for indexed chunk downloads.",
    )
    stream_block_bytes: int = Field(
        default=1024 * 1024,
        description="Read size while streaming artifacts.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    @field_validator("hwaccel")
    @classmethod
    def _check_hwaccel(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in HWACCEL_MODES:
            raise ValueError(f"hwaccel must be one of {sorted(HWACCEL_MODES)}")
        return value

    @field_validator("max_concurrent_exports")
    @classmethod
    def _check_capacity(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_concurrent_exports must be at least 1")
        return value

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------
    @property
    def exports_dir(self) -> Path:
        return Path(self.workdir).expanduser().resolve() / "exports"

    @property
    def temp_dir(self) -> Path:
        return Path(self.workdir).expanduser().resolve() / "temp"

    # ------------------------------------------------------------------
    # Public / safe export
    # ------------------------------------------------------------------
    def to_public_dict(self) -> dict:
        """
        Return a dictionary of non-sensitive settings suitable
        for logging or CLI display.
        """
        return {
            "workdir": self.workdir,
            "uploads_dir": self.uploads_dir,
            "font_path": self.font_path,
            "redis": "configured" if self.redis_url else "memory",
            "export_ttl_seconds": self.export_ttl_seconds,
            "download_token_ttl_seconds": self.download_token_ttl_seconds,
            "max_concurrent_exports": self.max_concurrent_exports,
            "large_file_mb": self.large_file_mb,
            "hwaccel": self.hwaccel,
            "vaapi_device": self.vaapi_device,
            "hw_probe_timeout_seconds": self.hw_probe_timeout_seconds,
            "cleanup_grace_seconds": self.cleanup_grace_seconds,
            "chunk_size_bytes": self.chunk_size_bytes,
            "stream_block_bytes": self.stream_block_bytes,
            "log_level": self.log_level,
        }


def load_settings(**overrides) -> Settings:
    """Build Settings, reporting validation failures as ConfigurationError."""
    from pydantic import ValidationError

    from subburn.exceptions import ConfigurationError

    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
