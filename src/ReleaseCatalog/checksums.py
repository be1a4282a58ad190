"""Checksum manifest parsing and artifact integrity verification.

Every release publishes a ``<product>_<version>_SHA256SUMS`` manifest listing
one ``<hex digest> <filename>`` pair per line.  :class:`IntegrityVerifier`
fetches the manifest matching an artifact's name, hashes the artifact bytes,
and refuses anything that is missing from the manifest or whose digest
differs.  No downloaded or extracted artifact may be trusted until
:meth:`IntegrityVerifier.verify` has returned for it.

The manifest's detached signature (``shasums_signature``) is recorded in the
catalog but not checked here.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import httpx

from .errors import DigestMismatchError, ManifestParseError, SumNotFoundError
from .naming import manifest_url, parse_artifact_name
from .net import get_bytes
from .settings import CatalogSettings, get_default_settings

__all__ = [
    "ChecksumManifest",
    "IntegrityVerifier",
    "parse_manifest",
    "sha256_bytes",
    "sha256_file",
]

LOGGER = logging.getLogger("ReleaseCatalog.checksums")

_HEX_DIGEST = re.compile(r"(?i)^[0-9a-f]{64}$")
_CHUNK_SIZE = 1 << 16


def parse_manifest(text: str) -> Dict[str, bytes]:
    """Parse manifest ``text`` into a ``filename -> digest`` mapping.

    Blank lines are ignored.  Any other line must hold exactly two
    whitespace-separated fields, the first being a 64 character hex digest.

    Raises:
        ManifestParseError: For the whole manifest when any line is malformed.
    """

    digests: Dict[str, bytes] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        fields = line.split()
        if not fields:
            continue
        if len(fields) != 2:
            raise ManifestParseError(f"line {lineno}: expected '<digest> <filename>', got {line!r}")
        digest, filename = fields
        if not _HEX_DIGEST.match(digest):
            raise ManifestParseError(f"line {lineno}: {digest!r} is not a SHA-256 hex digest")
        digests[filename] = bytes.fromhex(digest)
    return digests


def sha256_bytes(content: bytes) -> bytes:
    return hashlib.sha256(content).digest()


def sha256_file(path: Path) -> bytes:
    """Return the SHA-256 digest of ``path`` without loading it into memory."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.digest()


@dataclass(slots=True, frozen=True)
class ChecksumManifest:
    """Digests published for one (product, version)."""

    product: str
    version: str
    digests: Mapping[str, bytes] = field(default_factory=dict)
    url: Optional[str] = None

    def digest_for(self, filename: str) -> bytes:
        try:
            return self.digests[filename]
        except KeyError:
            raise SumNotFoundError(
                f"{filename} is not listed in the {self.product} {self.version} checksum manifest"
            ) from None

    def __contains__(self, filename: object) -> bool:
        return filename in self.digests

    def __len__(self) -> int:
        return len(self.digests)


class IntegrityVerifier:
    """Fetch checksum manifests and verify artifact content against them.

    Manifests are cached per (product, version) for the lifetime of the
    verifier, so verifying several builds of one release costs one fetch.
    """

    def __init__(self, client: httpx.Client, settings: Optional[CatalogSettings] = None) -> None:
        self._client = client
        self._settings = settings or get_default_settings()
        self._manifests: Dict[Tuple[str, str], ChecksumManifest] = {}
        self._lock = threading.Lock()

    def manifest_url(self, product: str, version: str) -> str:
        return manifest_url(self._settings.base_url, product, version)

    def fetch_manifest(self, product: str, version: str) -> ChecksumManifest:
        """Return the parsed manifest for ``product`` at ``version``.

        Raises:
            NetworkError: When the manifest cannot be retrieved.
            ManifestParseError: When the manifest is malformed.
        """

        key = (product, version)
        with self._lock:
            cached = self._manifests.get(key)
        if cached is not None:
            return cached
        url = self.manifest_url(product, version)
        body = get_bytes(self._client, url, settings=self._settings)
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestParseError(f"checksum manifest {url} is not UTF-8 text") from exc
        manifest = ChecksumManifest(product=product, version=version, digests=parse_manifest(text), url=url)
        LOGGER.info(
            "fetched checksum manifest",
            extra={"stage": "verify", "manifest_url": url, "entries": len(manifest)},
        )
        with self._lock:
            self._manifests[key] = manifest
        return manifest

    def verify(self, filename: str, content: bytes) -> str:
        """Verify ``content`` of the artifact named ``filename``; return its hex digest.

        Raises:
            NameParseError: If ``filename`` does not follow the artifact naming convention.
            SumNotFoundError: If the manifest has no entry for ``filename``.
            DigestMismatchError: If the computed digest differs from the manifest entry.
        """

        return self._check(filename, sha256_bytes(content))

    def verify_file(self, path: Path) -> str:
        """Verify a downloaded artifact on disk, using its basename as the artifact name."""

        path = Path(path)
        return self._check(path.name, sha256_file(path))

    def _check(self, filename: str, actual: bytes) -> str:
        name = parse_artifact_name(filename)
        manifest = self.fetch_manifest(name.product, name.version)
        expected = manifest.digest_for(name.filename)
        if not hmac.compare_digest(expected, actual):
            LOGGER.error(
                "checksum mismatch",
                extra={
                    "stage": "verify",
                    "artifact": name.filename,
                    "expected": expected.hex(),
                    "actual": actual.hex(),
                },
            )
            raise DigestMismatchError(
                f"SHA-256 of {name.filename} does not match the published checksum",
                expected=expected.hex(),
                actual=actual.hex(),
            )
        LOGGER.info("checksum verified", extra={"stage": "verify", "artifact": name.filename})
        return actual.hex()
