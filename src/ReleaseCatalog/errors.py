"""Exception hierarchy shared across catalog ingestion, lookup, and installation.

Release catalog work spans index retrieval, directory crawling, platform build
resolution, artifact download, and checksum verification.  This module groups
those failure modes into a single hierarchy so callers can react to broad
categories (a fatal ingestion failure vs. a recoverable lookup miss vs. an
integrity failure that must abort an install) while still having access to the
specialised subclasses when finer-grained handling is required.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ReleaseCatalogError",
    "ConfigError",
    "NetworkError",
    "IngestionError",
    "IndexFetchError",
    "DecodeError",
    "CacheWriteError",
    "CrawlCancelledError",
    "CatalogLookupError",
    "NotFound",
    "BuildResolutionError",
    "CatalogFrozenError",
    "ExtractionError",
    "EntryNotFoundError",
    "IntegrityError",
    "ManifestParseError",
    "NameParseError",
    "SumNotFoundError",
    "DigestMismatchError",
    "VersionParseError",
    "ParseError",
]


class ReleaseCatalogError(RuntimeError):
    """Base exception for release catalog construction, lookup, or install failures."""


class ConfigError(ReleaseCatalogError):
    """Raised when settings or CLI inputs are invalid."""


class NetworkError(ReleaseCatalogError):
    """Raised when an HTTP request fails at the transport level or returns a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


# --- Ingestion -----------------------------------------------------------------


class IngestionError(ReleaseCatalogError):
    """Raised when catalog construction cannot complete; fatal at startup."""


class IndexFetchError(NetworkError, IngestionError):
    """Raised when the index document cannot be retrieved."""


class DecodeError(IngestionError):
    """Raised when the index document is not valid JSON or does not match the expected shape."""


class CacheWriteError(IngestionError):
    """Raised when the fetched index document cannot be persisted to the response cache."""


class CrawlCancelledError(IngestionError):
    """Raised when a crawl is stopped through its cancellation token."""


# --- Lookup --------------------------------------------------------------------


class CatalogLookupError(ReleaseCatalogError):
    """Raised when a product or version is not present in the catalog."""

    def __init__(self, message: str, *, product: Optional[str] = None, version: Optional[str] = None) -> None:
        super().__init__(message)
        self.product = product
        self.version = version


NotFound = CatalogLookupError


class BuildResolutionError(CatalogLookupError):
    """Raised when a version has no build for the requested (os, arch) pair."""


class CatalogFrozenError(ReleaseCatalogError):
    """Raised when a frozen catalog receives an insert."""


# --- Installation ----------------------------------------------------------------


class ExtractionError(ReleaseCatalogError):
    """Raised when an archive cannot be opened or its binary cannot be materialised."""


class EntryNotFoundError(ExtractionError):
    """Raised when the archive has no entry named after the product binary."""


class IntegrityError(ReleaseCatalogError):
    """Base class for checksum verification failures; always aborts the install."""


class ManifestParseError(IntegrityError):
    """Raised when a checksum manifest line is malformed."""


class NameParseError(IntegrityError):
    """Raised when an artifact filename does not follow ``<product>_<version>_<os>_<arch>.<ext>``."""


class SumNotFoundError(IntegrityError):
    """Raised when the manifest has no digest for the artifact filename."""


class DigestMismatchError(IntegrityError):
    """Raised when the computed digest differs from the manifest entry."""

    def __init__(self, message: str, *, expected: str, actual: str) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


# --- Versions ------------------------------------------------------------------


class VersionParseError(ReleaseCatalogError, ValueError):
    """Raised when a version string does not conform to the semantic version grammar."""


ParseError = VersionParseError
# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.errors",
#   "purpose": "Define the exception hierarchy used across ingestion, lookup, and installation",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "ingestion", "name": "Ingestion Errors", "anchor": "ING", "kind": "api"},
#     {"id": "lookup", "name": "Lookup Errors", "anchor": "LKP", "kind": "api"},
#     {"id": "install", "name": "Extraction & Integrity Errors", "anchor": "INS", "kind": "api"},
#     {"id": "versions", "name": "Version Errors", "anchor": "VER", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
