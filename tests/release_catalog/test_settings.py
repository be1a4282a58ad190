"""Environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from ReleaseCatalog.errors import ConfigError
from ReleaseCatalog.settings import (
    DEFAULT_BASE_URL,
    get_default_settings,
    invalidate_default_settings_cache,
    load_settings,
)


def test_defaults(tmp_path: Path) -> None:
    settings = load_settings()
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.index_url == f"{DEFAULT_BASE_URL}/index.json"
    assert settings.allowed_hosts == ["releases.hashicorp.com"]
    assert settings.crawl_parallelism == 10
    assert settings.cache_dir == tmp_path / "cache"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELEASE_CATALOG_BASE_URL", "https://mirror.example.com/releases/")
    monkeypatch.setenv("RELEASE_CATALOG_ALLOWED_HOSTS", "Mirror.Example.com, cdn.example.com")
    monkeypatch.setenv("RELEASE_CATALOG_CRAWL_PARALLELISM", "3")
    monkeypatch.setenv("RELEASE_CATALOG_LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.base_url == "https://mirror.example.com/releases"
    assert settings.allowed_hosts == ["mirror.example.com", "cdn.example.com"]
    assert settings.crawl_parallelism == 3
    assert settings.log_level == "DEBUG"


def test_allowed_hosts_follow_base_url() -> None:
    assert load_settings(base_url="http://localhost:8080").allowed_hosts == ["localhost"]


def test_index_path_normalized() -> None:
    settings = load_settings(base_url="https://example.com", index_path="catalog/index.json")
    assert settings.index_url == "https://example.com/catalog/index.json"


@pytest.mark.parametrize(
    "overrides",
    [
        {"base_url": "ftp://example.com"},
        {"crawl_parallelism": 0},
        {"crawl_parallelism": 65},
        {"log_level": "chatty"},
        {"max_retries": -1},
    ],
)
def test_invalid_values_raise_config_error(overrides) -> None:
    with pytest.raises(ConfigError):
        load_settings(**overrides)


def test_default_settings_cached(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_default_settings()
    assert get_default_settings() is first
    assert get_default_settings(copy=True) is not first

    monkeypatch.setenv("RELEASE_CATALOG_MAX_RETRIES", "7")
    assert get_default_settings().max_retries == first.max_retries
    invalidate_default_settings_cache()
    assert get_default_settings().max_retries == 7


def test_user_agent_header() -> None:
    headers = load_settings(user_agent="release-catalog-test/1.0").polite_headers()
    assert headers == {"User-Agent": "release-catalog-test/1.0"}
