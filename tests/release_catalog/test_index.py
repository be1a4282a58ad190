"""Index document retrieval, validator-keyed caching, and decoding."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
import pytest

from ReleaseCatalog.errors import (
    CacheWriteError,
    DecodeError,
    IndexFetchError,
    IngestionError,
    NetworkError,
)
from ReleaseCatalog.index import IndexCache, IndexDocumentFetcher, decode_index, normalize_etag
from ReleaseCatalog.net import build_http_client
from ReleaseCatalog.settings import CatalogSettings

from ._helpers import FakeReleaseServer, index_document


@pytest.fixture
def document() -> bytes:
    return index_document(
        {"terraform": ["0.12.3", "0.11.14", "0.12.0-beta1"], "consul": ["1.5.0"]},
        platforms=[("linux", "amd64"), ("darwin", "amd64")],
    )


def test_fetch_index_decodes_and_freezes(
    client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer, document: bytes
) -> None:
    server.add("/index.json", document, headers={"ETag": '"abc123"'})
    catalog = IndexDocumentFetcher(client, settings).fetch_index()

    assert catalog.frozen
    assert catalog.list_products() == ["consul", "terraform"]
    assert catalog.list_versions("terraform") == ["0.11.14", "0.12.0-beta1", "0.12.3"]
    version = catalog.get_version("terraform", "0.12.3")
    assert version.shasums == "terraform_0.12.3_SHA256SUMS"
    assert version.shasums_signature == "terraform_0.12.3_SHA256SUMS.sig"
    assert version.platforms() == [("darwin", "amd64"), ("linux", "amd64")]


def test_document_cached_under_etag_and_reused(
    client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer, document: bytes
) -> None:
    server.add("/index.json", document, headers={"ETag": '"abc123"'})
    IndexDocumentFetcher(client, settings).fetch_index()

    cached = settings.cache_dir / "abc123" / "abc123.index"
    assert cached.read_bytes() == document

    # Same validator, different body: the cached copy wins.
    server.add("/index.json", b"{}", headers={"ETag": '"abc123"'})
    catalog = IndexDocumentFetcher(client, settings).fetch_index()
    assert "terraform" in catalog


def test_new_etag_refreshes_cache(
    client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer, document: bytes
) -> None:
    server.add("/index.json", document, headers={"ETag": 'W/"v1"'})
    IndexDocumentFetcher(client, settings).fetch_index()
    server.add("/index.json", index_document({"nomad": ["0.9.0"]}), headers={"ETag": '"v2"'})
    catalog = IndexDocumentFetcher(client, settings).fetch_index()

    assert catalog.list_products() == ["nomad"]
    assert (settings.cache_dir / "v1" / "v1.index").exists()
    assert (settings.cache_dir / "v2" / "v2.index").exists()


def test_missing_etag_skips_cache(
    client: httpx.Client,
    settings: CatalogSettings,
    server: FakeReleaseServer,
    document: bytes,
    caplog: pytest.LogCaptureFixture,
) -> None:
    server.add("/index.json", document)
    with caplog.at_level(logging.WARNING, logger="ReleaseCatalog"):
        catalog = IndexDocumentFetcher(client, settings).fetch_index()
    assert "terraform" in catalog
    assert not settings.cache_dir.exists() or not any(settings.cache_dir.iterdir())
    assert any("no ETag" in record.getMessage() for record in caplog.records)


def test_transient_status_is_retried(settings: CatalogSettings, document: bytes) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, content=document, headers={"ETag": '"retry"'})

    with build_http_client(settings, transport=httpx.MockTransport(handler)) as http:
        catalog = IndexDocumentFetcher(http, settings).fetch_index()
    assert calls["count"] == 2
    assert "consul" in catalog


def test_non_success_status_is_fatal(client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer) -> None:
    server.add("/index.json", b"gone", status=404)
    with pytest.raises(IndexFetchError) as excinfo:
        IndexDocumentFetcher(client, settings).fetch_index()
    assert isinstance(excinfo.value, NetworkError)
    assert isinstance(excinfo.value, IngestionError)
    assert excinfo.value.status_code == 404
    assert server.hits("/index.json") == 1


def test_transport_failure_is_fatal(settings: CatalogSettings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with build_http_client(settings, transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(IndexFetchError):
            IndexDocumentFetcher(http, settings).fetch_index()


def test_malformed_document_raises_decode_error(
    client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer
) -> None:
    server.add("/index.json", b"{not json", headers={"ETag": '"broken"'})
    with pytest.raises(DecodeError):
        IndexDocumentFetcher(client, settings).fetch_index()


def test_wrong_shape_raises_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_index(json.dumps({"terraform": {"versions": {"1.0.0": {"builds": [{"os": "linux"}]}}}}).encode())


def test_unparsable_versions_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    payload = json.dumps(
        {
            "terraform": {
                "name": "terraform",
                "versions": {
                    "1.0.0": {"version": "1.0.0", "builds": []},
                    "nightly": {"version": "nightly", "builds": []},
                },
            },
            "packer": {"name": "packer", "versions": {}},
        }
    ).encode()
    with caplog.at_level(logging.WARNING, logger="ReleaseCatalog"):
        catalog = decode_index(payload)
    assert catalog.list_versions("terraform") == ["1.0.0"]
    assert catalog.list_products() == ["packer", "terraform"]
    assert any("unparsable version" in record.getMessage() for record in caplog.records)


def test_unwritable_cache_is_fatal(
    tmp_path: Path, client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer, document: bytes
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied")
    server.add("/index.json", document, headers={"ETag": '"abc"'})
    fetcher = IndexDocumentFetcher(client, settings, cache=IndexCache(blocker))
    with pytest.raises(CacheWriteError):
        fetcher.fetch_index()


def test_cache_write_keeps_existing_copy(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path / "cache")
    target = cache.path_for("tag")
    target.parent.mkdir(parents=True)
    target.write_bytes(b"winner")

    assert cache.write("tag", b"loser") == target
    assert target.read_bytes() == b"winner"
    assert [p.name for p in target.parent.iterdir()] == ["tag.index"]


def test_unsafe_etag_is_hashed(tmp_path: Path) -> None:
    cache = IndexCache(tmp_path)
    path = cache.path_for("../../etc/passwd")
    assert path.parent.parent == tmp_path
    assert len(path.parent.name) == 64


@pytest.mark.parametrize(
    ("header", "expected"),
    [('"abc"', "abc"), ('W/"abc"', "abc"), ("abc", "abc"), ('""', None), (None, None)],
)
def test_normalize_etag(header, expected) -> None:
    assert normalize_etag(header) == expected
