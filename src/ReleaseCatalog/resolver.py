"""Platform build resolution.

Maps a requested ``(os, arch)`` pair to a :class:`~ReleaseCatalog.catalog.Build`
by exact match.  There is no fuzzy or architecture-fallback matching: asking
for ``darwin/arm64`` never yields a ``darwin/amd64`` build.
"""

from __future__ import annotations

import platform
from typing import Optional, Tuple

from .catalog import Build, Catalog, Version

__all__ = ["local_platform", "resolve_build", "resolve_local_build"]

_OS_ALIASES = {
    "darwin": "darwin",
    "linux": "linux",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
    "sunos": "solaris",
    "solaris": "solaris",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "arm": "arm",
}


def local_platform() -> Tuple[str, str]:
    """Return the running interpreter's ``(os, arch)`` in release naming."""

    system = platform.system().lower()
    machine = platform.machine().lower()
    return _OS_ALIASES.get(system, system), _ARCH_ALIASES.get(machine, machine)


def resolve_local_build(version: Version, os: Optional[str] = None, arch: Optional[str] = None) -> Build:
    """Return the build of ``version`` for exactly ``(os, arch)``.

    Missing ``os``/``arch`` default to :func:`local_platform`.

    Raises:
        BuildResolutionError: When no build matches the pair.
    """

    local_os, local_arch = local_platform()
    return version.get_build(os or local_os, arch or local_arch)


def resolve_build(
    catalog: Catalog,
    product: str,
    version: Optional[str] = None,
    *,
    os: Optional[str] = None,
    arch: Optional[str] = None,
) -> Build:
    """Resolve a build through ``catalog``; ``version=None`` selects the latest version.

    Raises:
        CatalogLookupError: When the product or version is unknown.
        BuildResolutionError: When the version has no matching build.
    """

    entry = catalog.get_product(product).latest() if version is None else catalog.get_version(product, version)
    return resolve_local_build(entry, os, arch)
