"""Artifact naming convention shared by discovery, manifest lookup, and verification.

Published artifacts follow ``<product>_<version>_<os>_<arch>.<ext>`` and the
checksum manifest for a release lives at
``<base>/<product>/<version>/<product>_<version>_SHA256SUMS``.  Any change to
this convention has to be made here, since the crawler, the manifest fetcher,
and the verifier all decompose names through these helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple
from urllib.parse import unquote, urlsplit

from .errors import NameParseError

__all__ = [
    "ARCHIVE_EXTENSIONS",
    "FIELD_DELIMITER",
    "SHASUMS_SUFFIX",
    "ArtifactName",
    "is_archive_name",
    "manifest_filename",
    "manifest_url",
    "parse_artifact_name",
    "split_extension",
]

FIELD_DELIMITER = "_"
SHASUMS_SUFFIX = "SHA256SUMS"
ARCHIVE_EXTENSIONS: Tuple[str, ...] = (".tar.gz", ".tgz", ".zip")


@dataclass(slots=True, frozen=True)
class ArtifactName:
    """Decomposed artifact filename."""

    product: str
    version: str
    os: str
    arch: str
    extension: str
    filename: str


def split_extension(filename: str) -> Tuple[str, str]:
    """Split ``filename`` into ``(stem, archive_extension)``; the extension may be empty."""

    lowered = filename.lower()
    for extension in ARCHIVE_EXTENSIONS:
        if lowered.endswith(extension):
            return filename[: -len(extension)], filename[-len(extension) :]
    return filename, ""


def is_archive_name(name: str) -> bool:
    """Return ``True`` when ``name`` (a filename or URL) ends in a known archive extension."""

    path = urlsplit(name).path if "://" in name else name
    return split_extension(path.rsplit("/", 1)[-1])[1] != ""


def parse_artifact_name(name: str) -> ArtifactName:
    """Decompose an artifact filename, URL, or path.

    Raises:
        NameParseError: If the name does not split into exactly four
            delimiter-separated fields, a field is empty, or the unquoted
            filename carries path separators or ``..``.

    Examples:
        >>> parse_artifact_name("terraform_0.12.3_darwin_amd64.zip").version
        '0.12.3'
    """

    path = urlsplit(name).path if "://" in name else name
    filename = unquote(path.replace("\\", "/").rsplit("/", 1)[-1])
    if "/" in filename or "\\" in filename or ".." in filename:
        raise NameParseError(f"unsafe artifact name {filename!r}")
    stem, extension = split_extension(filename)
    fields = stem.split(FIELD_DELIMITER)
    if len(fields) != 4 or not all(fields):
        raise NameParseError(
            f"invalid artifact name {filename!r}: expected "
            f"<product>{FIELD_DELIMITER}<version>{FIELD_DELIMITER}<os>{FIELD_DELIMITER}<arch>"
        )
    product, version, os_name, arch = fields
    return ArtifactName(
        product=product,
        version=version,
        os=os_name,
        arch=arch,
        extension=extension,
        filename=filename,
    )


def manifest_filename(product: str, version: str) -> str:
    return FIELD_DELIMITER.join((product, version, SHASUMS_SUFFIX))


def manifest_url(base_url: str, product: str, version: str) -> str:
    """Return the checksum manifest URL for ``product`` at ``version``."""

    return "/".join((base_url.rstrip("/"), product, version, manifest_filename(product, version)))
