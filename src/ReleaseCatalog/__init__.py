# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog",
#   "purpose": "Package initialization and lazy public exports for ReleaseCatalog",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the release metadata catalog.

The package aggregates published release metadata (products, versions, and
platform builds) into a semantically ordered in-memory catalog, either from a
single index document or by crawling directory listings, and verifies
downloaded artifacts against their published SHA-256 manifests before they
are extracted.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict, Tuple

__version__ = "0.1.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "ArtifactFetcher": (".artifacts", "ArtifactFetcher"),
    "Build": (".catalog", "Build"),
    "CancellationToken": (".cancellation", "CancellationToken"),
    "Catalog": (".catalog", "Catalog"),
    "CatalogLookupError": (".errors", "CatalogLookupError"),
    "CatalogSettings": (".settings", "CatalogSettings"),
    "IndexDocumentFetcher": (".index", "IndexDocumentFetcher"),
    "InstallResult": (".api", "InstallResult"),
    "IntegrityVerifier": (".checksums", "IntegrityVerifier"),
    "LinkCrawler": (".crawler", "LinkCrawler"),
    "Release": (".catalog", "Release"),
    "ReleaseCatalogError": (".errors", "ReleaseCatalogError"),
    "SemanticVersion": (".versions", "SemanticVersion"),
    "build_catalog": (".api", "build_catalog"),
    "build_http_client": (".net", "build_http_client"),
    "install": (".api", "install"),
    "load_settings": (".settings", "load_settings"),
    "resolve_build": (".resolver", "resolve_build"),
    "resolve_local_build": (".resolver", "resolve_local_build"),
}

__all__ = ["__version__", *sorted(_EXPORTS)]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .api import InstallResult, build_catalog, install
    from .artifacts import ArtifactFetcher
    from .cancellation import CancellationToken
    from .catalog import Build, Catalog, Release
    from .checksums import IntegrityVerifier
    from .crawler import LinkCrawler
    from .errors import CatalogLookupError, ReleaseCatalogError
    from .index import IndexDocumentFetcher
    from .net import build_http_client
    from .resolver import resolve_build, resolve_local_build
    from .settings import CatalogSettings, load_settings
    from .versions import SemanticVersion


def __getattr__(name: str) -> Any:
    """Lazily import public exports so ``import ReleaseCatalog`` stays cheap."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module = import_module(target[0], __name__)
    value = getattr(module, target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted({*globals(), *_EXPORTS})
