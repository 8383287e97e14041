# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.settings",
#   "purpose": "Typed, environment-aware configuration for the artifact downloader",
#   "sections": [
#     {"id": "enums", "name": "Enumerations", "anchor": "ENU", "kind": "api"},
#     {"id": "retry", "name": "RetrySettings", "anchor": "RET", "kind": "config"},
#     {"id": "transport", "name": "TransportSettings", "anchor": "TRA", "kind": "config"},
#     {"id": "downloader", "name": "DownloaderSettings", "anchor": "DOW", "kind": "config"},
#     {"id": "accessors", "name": "Settings Accessors", "anchor": "ACC", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Typed configuration for the circuit artifact downloader.

Settings are resolved from (in increasing precedence) built-in defaults,
environment variables prefixed with ``CIRCUIT_ARTIFACTS_``, and explicit
keyword arguments. Nested sections use ``__`` as the delimiter, e.g.::

    CIRCUIT_ARTIFACTS_TRANSPORT__STRATEGY=trustless
    CIRCUIT_ARTIFACTS_RETRY__MAX_RETRIES=3
    CIRCUIT_ARTIFACTS_USE_NATIVE_ARTIFACTS=true

:func:`get_settings` caches the environment-derived instance; tests call
:func:`reset_settings` after mutating the environment.
"""

from __future__ import annotations

import threading
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from platformdirs import user_data_dir
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .catalog import ProgramFormat
from .constants import DEFAULT_GATEWAYS, DEFAULT_NODE_API_URL
from .network.policy import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_POOL_TIMEOUT_S,
    DEFAULT_READ_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    DEFAULT_WRITE_TIMEOUT_S,
)
from .network.retry import RetryPolicy

__all__ = [
    "LogLevel",
    "LogFormat",
    "TransportStrategy",
    "RetrySettings",
    "TransportSettings",
    "DownloaderSettings",
    "default_store_root",
    "get_settings",
    "reset_settings",
]

APP_NAME = "circuit-artifacts"


# ============================================================================
# Enumerations
# ============================================================================


class LogLevel(str, Enum):
    """Logging levels accepted by the CLI and settings."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Console or JSON-lines log output."""

    CONSOLE = "console"
    JSON = "json"


class TransportStrategy(str, Enum):
    """Retrieval strategies, one per :class:`Transport` implementation."""

    GATEWAY = "gateway"
    TRUSTLESS = "trustless"
    NODE = "node"


def default_store_root() -> Path:
    """Per-user data directory that holds ``artifacts-v2.1/``."""
    return Path(user_data_dir(APP_NAME))


# ============================================================================
# RetrySettings
# ============================================================================


class RetrySettings(BaseModel):
    """Backoff parameters for network fetches."""

    max_retries: int = Field(5, ge=0, le=20, description="Retries after the first attempt")
    base_delay_ms: int = Field(1000, ge=0, description="Base delay for exponential backoff")
    jitter: bool = Field(True, description="Add uniform [0, base) jitter to each delay")
    max_delay_ms: Optional[int] = Field(
        None, ge=0, description="Optional cap on a single delay (uncapped when unset)"
    )

    def to_policy(self) -> RetryPolicy:
        """Build the :class:`RetryPolicy` these settings describe."""

        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=self.base_delay_ms / 1000.0,
            jitter=self.jitter,
            max_delay=None if self.max_delay_ms is None else self.max_delay_ms / 1000.0,
        )


# ============================================================================
# TransportSettings
# ============================================================================


class TransportSettings(BaseModel):
    """Network strategy selection and HTTP client tuning."""

    strategy: TransportStrategy = Field(
        TransportStrategy.TRUSTLESS,
        description="Retrieval strategy (gateway/trustless/node); trustless checks content on arrival",
    )
    gateways: List[str] = Field(
        default_factory=lambda: list(DEFAULT_GATEWAYS),
        description="Gateway base URLs, rotated round-robin per request",
    )
    node_api_url: str = Field(DEFAULT_NODE_API_URL, description="IPFS node RPC endpoint")
    connect_timeout_s: float = Field(DEFAULT_CONNECT_TIMEOUT_S, gt=0)
    read_timeout_s: float = Field(DEFAULT_READ_TIMEOUT_S, gt=0)
    write_timeout_s: float = Field(DEFAULT_WRITE_TIMEOUT_S, gt=0)
    pool_timeout_s: float = Field(DEFAULT_POOL_TIMEOUT_S, gt=0)
    verify_tls: bool = Field(True, description="Verify TLS certificates against certifi")
    http2: bool = Field(True, description="Negotiate HTTP/2 where supported")
    user_agent: str = Field(DEFAULT_USER_AGENT)

    @field_validator("gateways", mode="before")
    @classmethod
    def split_gateways(cls, value: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("gateways")
    @classmethod
    def validate_gateways(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("at least one gateway URL is required")
        cleaned = []
        for url in value:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"gateway URL must use http or https: {url!r}")
            cleaned.append(url.rstrip("/"))
        return cleaned

    @field_validator("node_api_url")
    @classmethod
    def validate_node_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"node API URL must use http or https: {value!r}")
        return value.rstrip("/")


# ============================================================================
# DownloaderSettings
# ============================================================================


class DownloaderSettings(BaseSettings):
    """Top-level downloader configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CIRCUIT_ARTIFACTS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    store_root: Path = Field(
        default_factory=default_store_root,
        description="Directory under which artifacts-v2.1/ is kept",
    )
    use_native_artifacts: bool = Field(
        False, description="Fetch the native (.dat) program instead of WebAssembly"
    )
    digest_table: Optional[Path] = Field(
        None, description="JSON digest table (defaults to the packaged table)"
    )
    require_digests: bool = Field(
        True,
        description=(
            "Fail when an artifact fetched over an unverified transport has no reference digest"
        ),
    )
    memory_cache: bool = Field(False, description="Keep fetched bytes in process memory")
    max_workers: int = Field(3, ge=1, le=16, description="Concurrent fetches per variant")
    log_level: LogLevel = Field(LogLevel.INFO)
    log_format: LogFormat = Field(LogFormat.CONSOLE)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    @field_validator("store_root", "digest_table", mode="before")
    @classmethod
    def expand_paths(cls, v: Any) -> Any:
        """Expand user home."""
        if v is None or v == "":
            return None
        if isinstance(v, (str, Path)):
            return Path(v).expanduser()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @property
    def program_format(self) -> ProgramFormat:
        return ProgramFormat.NATIVE if self.use_native_artifacts else ProgramFormat.WASM

    def to_retry_policy(self) -> RetryPolicy:
        return self.retry.to_policy()


# ============================================================================
# Settings Accessors
# ============================================================================

_SETTINGS_CACHE: Optional[DownloaderSettings] = None
_SETTINGS_LOCK = threading.Lock()


def get_settings() -> DownloaderSettings:
    """Return the environment-derived settings, constructing them once."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = DownloaderSettings()
        return _SETTINGS_CACHE


def reset_settings() -> None:
    """Invalidate the cached settings."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
