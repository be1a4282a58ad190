# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.catalog",
#   "purpose": "In-memory product -> version -> build index with ordered version storage",
#   "sections": [
#     {"id": "records", "name": "Build & Release records", "anchor": "REC", "kind": "api"},
#     {"id": "version", "name": "Version", "anchor": "VER", "kind": "api"},
#     {"id": "product", "name": "Product", "anchor": "PRD", "kind": "api"},
#     {"id": "catalog", "name": "Catalog", "anchor": "CAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""In-memory release catalog.

The catalog maps a normalised product name to a :class:`Product`, which keeps
its versions both in a ``version string -> Version`` mapping and in an
ascending, duplicate-free ``sorted_versions`` list of parsed
:class:`~ReleaseCatalog.versions.SemanticVersion` values.  Each
:class:`Version` holds its platform :class:`Build` records keyed by
``(os, arch)``.

A catalog is populated exactly once by an ingestion source and then frozen.
:meth:`Catalog.insert` performs no locking: during a crawl all inserts are
funnelled through a single consumer thread, and once frozen the catalog is
read-only and safe to share between reader threads.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .errors import BuildResolutionError, CatalogFrozenError, CatalogLookupError, VersionParseError
from .versions import SemanticVersion, parse_version

__all__ = [
    "Build",
    "Catalog",
    "PlatformKey",
    "Product",
    "Release",
    "Version",
    "normalize_product_name",
]

PlatformKey = Tuple[str, str]


def normalize_product_name(name: str) -> str:
    """Return the case-normalised catalog key for ``name``."""

    return name.strip().lower()


# --- Build & Release records ---------------------------------------------------


@dataclass(slots=True, frozen=True)
class Build:
    """Platform-specific artifact of a product version."""

    product: str
    version: str
    os: str
    arch: str
    filename: str
    url: str

    @property
    def platform(self) -> PlatformKey:
        return (self.os, self.arch)


@dataclass(slots=True, frozen=True)
class Release:
    """Discovery event: one artifact found by an ingestion source."""

    product: str
    version: SemanticVersion
    os: str
    arch: str
    filename: str
    url: str


# --- Version -------------------------------------------------------------------


@dataclass
class Version:
    """One published version of a product and its builds."""

    product: str
    version: str
    semver: SemanticVersion
    shasums: Optional[str] = None
    shasums_signature: Optional[str] = None
    builds: Dict[PlatformKey, Build] = field(default_factory=dict)

    def add_build(self, build: Build) -> None:
        """Upsert ``build`` under its ``(os, arch)`` key; the last write wins."""

        self.builds[build.platform] = build

    def get_build(self, os: str, arch: str) -> Build:
        """Return the build for exactly ``(os, arch)``."""

        try:
            return self.builds[(os, arch)]
        except KeyError:
            raise BuildResolutionError(
                f"no {os}/{arch} build for {self.product} {self.version}",
                product=self.product,
                version=self.version,
            ) from None

    def platforms(self) -> List[PlatformKey]:
        return sorted(self.builds)


# --- Product -------------------------------------------------------------------


@dataclass
class Product:
    """A product with its versions kept in semantic-version order."""

    name: str
    versions: Dict[str, Version] = field(default_factory=dict)
    sorted_versions: List[SemanticVersion] = field(default_factory=list)
    _by_semver: Dict[SemanticVersion, Version] = field(default_factory=dict, repr=False)

    def ensure_version(self, semver: SemanticVersion) -> Version:
        """Return the Version equal to ``semver``, creating it in sorted position if absent.

        The insertion point is found by binary search.  When an equal value is
        already stored the existing Version is reused; otherwise the tail of
        ``sorted_versions`` shifts one slot right and the new value takes the
        freed index.
        """

        index = bisect.bisect_left(self.sorted_versions, semver)
        if index < len(self.sorted_versions) and self.sorted_versions[index] == semver:
            return self._by_semver[self.sorted_versions[index]]
        version = Version(product=self.name, version=str(semver), semver=semver)
        self.sorted_versions.insert(index, semver)
        self.versions[version.version] = version
        self._by_semver[semver] = version
        return version

    def get_version(self, version: Union[str, SemanticVersion]) -> Version:
        """Look ``version`` up by its published string, then by parsed value."""

        if isinstance(version, str) and version in self.versions:
            return self.versions[version]
        try:
            semver = parse_version(version)
        except VersionParseError:
            semver = None
        if semver is not None and semver in self._by_semver:
            return self._by_semver[semver]
        raise CatalogLookupError(
            f"version {version} of {self.name} not found",
            product=self.name,
            version=str(version),
        )

    def latest(self) -> Version:
        if not self.sorted_versions:
            raise CatalogLookupError(f"{self.name} has no versions", product=self.name)
        return self._by_semver[self.sorted_versions[-1]]

    def version_strings(self) -> List[str]:
        return [self._by_semver[semver].version for semver in self.sorted_versions]

    def __len__(self) -> int:
        return len(self.sorted_versions)


# --- Catalog -------------------------------------------------------------------


class Catalog:
    """Product -> version -> build index.

    Examples:
        >>> catalog = Catalog()
        >>> _ = catalog.insert(Release("Terraform", SemanticVersion.parse("0.12.3"),
        ...     "linux", "amd64", "terraform_0.12.3_linux_amd64.zip", "https://example/t.zip"))
        >>> catalog.latest_version("terraform")
        '0.12.3'
    """

    def __init__(self) -> None:
        self._products: Dict[str, Product] = {}
        self._frozen = False

    # -- mutation ---------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise CatalogFrozenError("catalog is frozen; build a new catalog to refresh")

    def _ensure_product(self, name: str) -> Product:
        key = normalize_product_name(name)
        product = self._products.get(key)
        if product is None:
            product = Product(name=key)
            self._products[key] = product
        return product

    def insert(self, release: Release) -> Build:
        """Insert a discovery record and return the stored Build.

        Not safe for arbitrary concurrent callers; serialise inserts through a
        single owner.
        """

        self._check_mutable()
        product = self._ensure_product(release.product)
        version = product.ensure_version(release.version)
        build = Build(
            product=product.name,
            version=version.version,
            os=release.os,
            arch=release.arch,
            filename=release.filename,
            url=release.url,
        )
        version.add_build(build)
        return build

    def add_product(self, name: str) -> Product:
        """Register ``name`` even if it ends up with no versions."""

        self._check_mutable()
        return self._ensure_product(name)

    def add_version(
        self,
        product: str,
        version: Union[str, SemanticVersion],
        *,
        shasums: Optional[str] = None,
        shasums_signature: Optional[str] = None,
    ) -> Version:
        """Register a version (without builds) and its checksum references."""

        self._check_mutable()
        entry = self._ensure_product(product).ensure_version(parse_version(version))
        if shasums is not None:
            entry.shasums = shasums
        if shasums_signature is not None:
            entry.shasums_signature = shasums_signature
        return entry

    def freeze(self) -> "Catalog":
        """Mark the catalog read-only and return it."""

        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- queries ----------------------------------------------------------------

    def get_product(self, product: str) -> Product:
        try:
            return self._products[normalize_product_name(product)]
        except KeyError:
            raise CatalogLookupError(f"product {product} not found", product=product) from None

    def get_version(self, product: str, version: Union[str, SemanticVersion]) -> Version:
        return self.get_product(product).get_version(version)

    def list_products(self) -> List[str]:
        """Return all product names in lexical order."""

        return sorted(self._products)

    def list_versions(self, product: str) -> List[str]:
        """Return the product's version strings in ascending precedence."""

        return self.get_product(product).version_strings()

    def latest_version(self, product: str) -> str:
        """Return the highest version string of ``product``."""

        return self.get_product(product).latest().version

    def latest_build(self, product: str, os: str, arch: str) -> Build:
        return self.get_product(product).latest().get_build(os, arch)

    def summary(self) -> Dict[str, int]:
        return {name: len(product) for name, product in sorted(self._products.items())}

    def __contains__(self, product: object) -> bool:
        return isinstance(product, str) and normalize_product_name(product) in self._products

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self) -> Iterator[Product]:
        for name in self.list_products():
            yield self._products[name]
