# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.settings",
#   "purpose": "Define the environment-driven settings model and its cached default instance",
#   "sections": [
#     {"id": "constants", "name": "Defaults", "anchor": "CONST", "kind": "constants"},
#     {"id": "catalogsettings", "name": "CatalogSettings", "anchor": "class-catalogsettings", "kind": "class"},
#     {"id": "get-default-settings", "name": "get_default_settings", "anchor": "function-get-default-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration for release catalog ingestion, HTTP access, and logging.

Every field can be overridden through an environment variable prefixed with
``RELEASE_CATALOG_`` (for example ``RELEASE_CATALOG_CRAWL_PARALLELISM=4``).
Comma-separated strings are accepted for list fields.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional
from urllib.parse import urlsplit

import platformdirs
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from . import __version__
from .errors import ConfigError

__all__ = [
    "APP_NAME",
    "DEFAULT_BASE_URL",
    "CatalogSettings",
    "get_default_settings",
    "invalidate_default_settings_cache",
    "load_settings",
]

APP_NAME = "release-catalog"
DEFAULT_BASE_URL = "https://releases.hashicorp.com"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class CatalogSettings(BaseSettings):
    """Settings shared by the ingestion sources, the HTTP client, and the CLI."""

    base_url: str = Field(default=DEFAULT_BASE_URL, description="Root of the release distribution endpoint")
    allowed_hosts: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Hosts the crawler may visit; defaults to the host of base_url",
    )
    index_path: str = Field(default="/index.json", description="Path of the index document below base_url")
    cache_dir: Path = Field(
        default_factory=lambda: Path(platformdirs.user_cache_dir(APP_NAME)) / "index",
        description="Directory holding validator-keyed copies of the index document",
    )

    crawl_parallelism: int = Field(default=10, ge=1, le=64, description="Simultaneous page fetches")
    queue_size: int = Field(default=256, ge=1, le=65536, description="Capacity of the discovery queue")
    max_pages: Optional[int] = Field(default=None, ge=1, description="Stop scheduling pages past this count")

    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    timeout_sec: float = Field(default=30.0, gt=0.0, le=300.0)
    download_timeout_sec: float = Field(default=300.0, gt=0.0, le=3600.0)
    max_retries: int = Field(default=3, ge=0, le=20)
    backoff_factor: float = Field(default=0.5, ge=0.0, le=10.0)
    http2_enabled: bool = Field(default=False)
    user_agent: str = Field(default=f"{APP_NAME}/{__version__}")

    log_level: str = Field(default="WARNING", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_dir: Path = Field(default_factory=lambda: Path(platformdirs.user_log_dir(APP_NAME)))
    log_json: bool = Field(default=True, description="Write JSON lines to the rotating log file")

    model_config = SettingsConfigDict(
        env_prefix="RELEASE_CATALOG_",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        parsed = urlsplit(value.strip())
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {value!r}")
        return value.strip().rstrip("/")

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def split_hosts(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("allowed_hosts")
    @classmethod
    def normalize_hosts(cls, value: List[str]) -> List[str]:
        return [host.strip().lower() for host in value if host.strip()]

    @field_validator("index_path")
    @classmethod
    def validate_index_path(cls, value: str) -> str:
        return "/" + value.strip().lstrip("/")

    @field_validator("cache_dir", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, value: Any) -> Path:
        return Path(value).expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        upper = str(value).upper()
        if upper not in _VALID_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_VALID_LEVELS)}, got {value!r}")
        return upper

    @model_validator(mode="after")
    def default_allowed_hosts(self) -> "CatalogSettings":
        if not self.allowed_hosts:
            host = urlsplit(self.base_url).hostname
            # Bypass validate_assignment to avoid re-running the model validator.
            object.__setattr__(self, "allowed_hosts", [host.lower()] if host else [])
        return self

    @property
    def index_url(self) -> str:
        return self.base_url + self.index_path

    def polite_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent}


_DEFAULT_LOCK = threading.RLock()
_DEFAULT_SETTINGS: Optional[CatalogSettings] = None


def load_settings(**overrides: Any) -> CatalogSettings:
    """Build settings from the environment plus ``overrides``; raise :class:`ConfigError` on invalid input."""

    try:
        return CatalogSettings(**overrides)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigError(f"invalid settings: {messages}") from exc


def get_default_settings(*, copy: bool = False) -> CatalogSettings:
    """Return the process-wide default settings, loading them on first use."""

    global _DEFAULT_SETTINGS
    with _DEFAULT_LOCK:
        if _DEFAULT_SETTINGS is None:
            _DEFAULT_SETTINGS = load_settings()
        return _DEFAULT_SETTINGS.model_copy(deep=True) if copy else _DEFAULT_SETTINGS


def invalidate_default_settings_cache() -> None:
    """Forget the cached default settings (test helper)."""

    global _DEFAULT_SETTINGS
    with _DEFAULT_LOCK:
        _DEFAULT_SETTINGS = None
