# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.index",
#   "purpose": "Fetch, cache, and decode the structured release index document",
#   "sections": [
#     {"id": "models", "name": "Index document models", "anchor": "MOD", "kind": "models"},
#     {"id": "cache", "name": "Validator-keyed response cache", "anchor": "CACHE", "kind": "api"},
#     {"id": "decode", "name": "Document decoding", "anchor": "DEC", "kind": "api"},
#     {"id": "fetcher", "name": "IndexDocumentFetcher", "anchor": "FET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Index-document ingestion.

The distribution endpoint publishes one JSON document describing every
product, version, and build.  :class:`IndexDocumentFetcher` retrieves it,
keeps a copy on disk keyed by the response's ``ETag`` so unchanged content is
not read again, and decodes it into a frozen
:class:`~ReleaseCatalog.catalog.Catalog`.

Any failure here (network, decoding, cache write) is fatal: no partially
decoded catalog is ever returned.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .catalog import Catalog, Release
from .errors import CacheWriteError, DecodeError, IndexFetchError, NetworkError, VersionParseError
from .net import create_retry_policy, ensure_success
from .settings import CatalogSettings, get_default_settings
from .versions import SemanticVersion

__all__ = [
    "BuildRecord",
    "IndexCache",
    "IndexDocumentFetcher",
    "ProductRecord",
    "VersionRecord",
    "decode_index",
    "normalize_etag",
]

LOGGER = logging.getLogger("ReleaseCatalog.index")

CACHE_SUFFIX = ".index"
_SAFE_TOKEN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")

# --- Index document models -------------------------------------------------------


class BuildRecord(BaseModel):
    """One platform build as published in the index document."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    version: str
    os: str
    arch: str
    filename: str
    url: str


class VersionRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    version: str = ""
    shasums: Optional[str] = None
    shasums_signature: Optional[str] = None
    builds: List[BuildRecord] = Field(default_factory=list)


class ProductRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    versions: Dict[str, VersionRecord] = Field(default_factory=dict)


_INDEX_ADAPTER: TypeAdapter[Dict[str, ProductRecord]] = TypeAdapter(Dict[str, ProductRecord])

# --- Validator-keyed response cache ------------------------------------------------


def normalize_etag(value: Optional[str]) -> Optional[str]:
    """Strip the weak prefix and quotes from an ``ETag`` header; ``None`` when empty."""

    if not value:
        return None
    token = value.strip()
    if token.startswith("W/"):
        token = token[2:]
    token = token.strip('"').strip()
    return token or None


class IndexCache:
    """On-disk copies of the index document, one per validator token.

    The layout is ``<root>/<token>/<token>.index``.  Tokens that are not safe
    path components are replaced by their SHA-256 hex digest.  Writes go to a
    temporary file that is hard-linked into place, so the final path either
    does not exist or holds a complete document, and a concurrent writer that
    lost the race leaves the winner's copy untouched.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @staticmethod
    def _key(token: str) -> str:
        if _SAFE_TOKEN.match(token) and token not in {".", ".."}:
            return token
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def path_for(self, token: str) -> Path:
        key = self._key(token)
        return self.root / key / f"{key}{CACHE_SUFFIX}"

    def read(self, token: str) -> Optional[bytes]:
        path = self.path_for(token)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOGGER.warning(
                "index cache unreadable; refetching",
                extra={"stage": "index", "cache_path": str(path), "error": str(exc)},
            )
            return None

    def write(self, token: str, payload: bytes) -> Path:
        """Persist ``payload`` under ``token`` if no copy exists yet.

        Raises:
            CacheWriteError: When the directory or file cannot be written.
        """

        path = self.path_for(token)
        tmp_name: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            with tempfile.NamedTemporaryFile(dir=path.parent, prefix=".tmp-", delete=False) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o600)
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                LOGGER.debug("index cache entry already present", extra={"stage": "index", "cache_path": str(path)})
        except OSError as exc:
            raise CacheWriteError(f"cannot write index cache {path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        return path


# --- Document decoding -------------------------------------------------------------


def decode_index(payload: bytes) -> Catalog:
    """Decode an index document into a frozen catalog.

    Versions that do not parse are skipped with a warning.

    Raises:
        DecodeError: When the payload is not JSON of the expected shape.
    """

    try:
        products = _INDEX_ADAPTER.validate_json(payload)
    except PydanticValidationError as exc:
        raise DecodeError(f"index document does not match the expected schema: {exc.error_count()} error(s)") from exc

    catalog = Catalog()
    skipped = 0
    for key, product in products.items():
        product_name = product.name or key
        catalog.add_product(product_name)
        for version_key, record in product.versions.items():
            version_string = record.version or version_key
            try:
                semver = SemanticVersion.parse(version_string)
            except VersionParseError as exc:
                skipped += 1
                LOGGER.warning(
                    "skipping unparsable version",
                    extra={"stage": "index", "product": product_name, "version": version_string, "error": str(exc)},
                )
                continue
            catalog.add_version(
                product_name,
                semver,
                shasums=record.shasums,
                shasums_signature=record.shasums_signature,
            )
            for build in record.builds:
                catalog.insert(
                    Release(
                        product=product_name,
                        version=semver,
                        os=build.os,
                        arch=build.arch,
                        filename=build.filename,
                        url=build.url,
                    )
                )
    LOGGER.info(
        "decoded index document",
        extra={"stage": "index", "products": len(catalog), "skipped_versions": skipped},
    )
    return catalog.freeze()


# --- IndexDocumentFetcher ------------------------------------------------------------


class IndexDocumentFetcher:
    """Build a catalog from the single index document."""

    def __init__(
        self,
        client: httpx.Client,
        settings: Optional[CatalogSettings] = None,
        *,
        cache: Optional[IndexCache] = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_default_settings()
        self._cache = cache or IndexCache(self._settings.cache_dir)

    def fetch_index(self) -> Catalog:
        """Retrieve (or reuse the cached copy of) the index document and decode it.

        Raises:
            IndexFetchError: On transport failure or a non-success status.
            DecodeError: When the document cannot be decoded.
            CacheWriteError: When a fresh document cannot be persisted.
        """

        return decode_index(self.fetch_document())

    def fetch_document(self) -> bytes:
        url = self._settings.index_url
        try:
            for attempt in create_retry_policy(self._settings):
                with attempt:
                    token, payload, cached = self._retrieve(url)
        except NetworkError as exc:
            raise IndexFetchError(str(exc), url=url, status_code=exc.status_code) from exc
        except httpx.HTTPError as exc:
            raise IndexFetchError(f"GET {url} failed: {exc}", url=url) from exc

        if token is None:
            LOGGER.warning("index response has no ETag; not caching", extra={"stage": "index", "url": url})
        elif cached:
            LOGGER.info("using cached index document", extra={"stage": "index", "etag": token})
        else:
            path = self._cache.write(token, payload)
            LOGGER.info("cached index document", extra={"stage": "index", "etag": token, "cache_path": str(path)})
        return payload

    def _retrieve(self, url: str):
        with self._client.stream("GET", url) as response:
            ensure_success(response)
            token = normalize_etag(response.headers.get("ETag"))
            if token is not None:
                cached = self._cache.read(token)
                if cached is not None:
                    return token, cached, True
            return token, response.read(), False
