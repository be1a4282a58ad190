# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.artifacts",
#   "purpose": "Download build archives and extract the product binary",
#   "sections": [
#     {"id": "helpers", "name": "Archive helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "fetcher", "name": "ArtifactFetcher", "anchor": "FET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Artifact download and single-entry archive extraction.

:class:`ArtifactFetcher` retrieves a build's archive bytes and pulls the one
entry named after the product binary out of it.  Callers must verify the
archive with :class:`~ReleaseCatalog.checksums.IntegrityVerifier` between
:meth:`ArtifactFetcher.download` and :meth:`ArtifactFetcher.extract`;
:func:`ReleaseCatalog.api.install` enforces that order.

Only the matched entry is written.  Member names that are absolute or carry
``..`` are skipped, and every write target is checked to resolve inside the
destination directory.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import IO, Iterator, List, Optional, Tuple, Union

import httpx

from .catalog import Build
from .errors import EntryNotFoundError, ExtractionError
from .net import get_bytes
from .settings import CatalogSettings, get_default_settings

__all__ = ["ArtifactFetcher", "binary_names"]

LOGGER = logging.getLogger("ReleaseCatalog.artifacts")

_COPY_BUFFER = 1 << 20
_Member = Union[zipfile.ZipInfo, tarfile.TarInfo]

# --- Archive helpers -------------------------------------------------------------


def binary_names(product_name: str) -> Tuple[str, str]:
    """Return the entry names accepted as the product binary."""

    return product_name, f"{product_name}.exe"


def _entry_name(raw: str) -> Optional[str]:
    relative = PurePosixPath(raw.replace("\\", "/"))
    if relative.is_absolute() or ".." in relative.parts:
        return None
    parts = [part for part in relative.parts if part not in ("", ".")]
    return "/".join(parts) or None


def _contained_target(directory: Path, name: str) -> Path:
    """Return ``directory/name``, refusing names that would land outside ``directory``."""

    relative = PurePosixPath(name.replace("\\", "/"))
    if relative.is_absolute() or not relative.parts or any(part in {"", ".", ".."} for part in relative.parts):
        raise ExtractionError(f"unsafe target name {name!r} for {directory}")
    target = Path(directory).joinpath(*relative.parts)
    root = Path(directory).resolve()
    if not target.resolve().is_relative_to(root):
        raise ExtractionError(f"target {target} escapes {root}")
    return target


def _zip_entries(archive: zipfile.ZipFile) -> Iterator[Tuple[str, "zipfile.ZipInfo"]]:
    for info in archive.infolist():
        name = _entry_name(info.filename)
        if name is None:
            LOGGER.warning("skipping unsafe archive entry", extra={"stage": "extract", "entry": info.filename})
        elif not info.is_dir():
            yield name, info


def _tar_entries(archive: tarfile.TarFile) -> Iterator[Tuple[str, tarfile.TarInfo]]:
    for member in archive.getmembers():
        name = _entry_name(member.name)
        if name is None:
            LOGGER.warning("skipping unsafe archive entry", extra={"stage": "extract", "entry": member.name})
        elif member.isfile():
            yield name, member


def _write_atomic(source: IO[bytes], target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.", delete=False)
    try:
        with handle:
            shutil.copyfileobj(source, handle, _COPY_BUFFER)
        os.chmod(handle.name, 0o755)
        os.replace(handle.name, target)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


def _select(entries: List[Tuple[str, _Member]], wanted: Tuple[str, ...], product_name: str) -> Tuple[str, _Member]:
    matches = [entry for entry in entries if entry[0] in wanted]
    if not matches:
        raise EntryNotFoundError(f"archive has no entry named {product_name!r}")
    if len(matches) > 1:
        raise ExtractionError(f"archive has {len(matches)} entries named {product_name!r}")
    return matches[0]


# --- ArtifactFetcher ---------------------------------------------------------------


class ArtifactFetcher:
    """Download build archives and extract the product binary from them."""

    def __init__(self, client: httpx.Client, settings: Optional[CatalogSettings] = None) -> None:
        self._client = client
        self._settings = settings or get_default_settings()

    def download(self, build: Build) -> bytes:
        """Return the archive bytes of ``build``.

        Raises:
            NetworkError: On transport failure or a non-success status.
        """

        LOGGER.info(
            "downloading artifact",
            extra={"stage": "download", "artifact": build.filename, "url": build.url},
        )
        payload = get_bytes(
            self._client,
            build.url,
            settings=self._settings,
            timeout=self._settings.download_timeout_sec,
        )
        LOGGER.info(
            "downloaded artifact",
            extra={"stage": "download", "artifact": build.filename, "size_bytes": len(payload)},
        )
        return payload

    def download_to(self, build: Build, directory: Path) -> Path:
        """Download ``build`` and save the raw archive as ``directory/<filename>``.

        Raises:
            ExtractionError: When the filename would resolve outside ``directory``.
        """

        target = _contained_target(Path(directory), build.filename)
        _write_atomic(io.BytesIO(self.download(build)), target)
        os.chmod(target, 0o644)
        return target

    def extract(self, product_name: str, archive_bytes: bytes, destination_dir: Path) -> Path:
        """Extract the product binary from a zip or gzip-tar payload into ``destination_dir``.

        Returns:
            Path of the written binary (mode 0755).

        Raises:
            EntryNotFoundError: When no entry is named after the product binary.
            ExtractionError: When the payload is not a readable archive, several
                entries match, or the binary would land outside ``destination_dir``.
        """

        wanted = binary_names(product_name)
        destination_dir = Path(destination_dir)
        for name in wanted:
            _contained_target(destination_dir, name)
        buffer = io.BytesIO(archive_bytes)
        try:
            if zipfile.is_zipfile(buffer):
                buffer.seek(0)
                with zipfile.ZipFile(buffer) as archive:
                    chosen, info = _select(list(_zip_entries(archive)), wanted, product_name)
                    target = _contained_target(destination_dir, chosen)
                    with archive.open(info) as source:  # type: ignore[arg-type]
                        _write_atomic(source, target)
            else:
                buffer.seek(0)
                with tarfile.open(fileobj=buffer, mode="r:*") as archive:
                    chosen, member = _select(list(_tar_entries(archive)), wanted, product_name)
                    target = _contained_target(destination_dir, chosen)
                    source = archive.extractfile(member)  # type: ignore[arg-type]
                    if source is None:
                        raise ExtractionError(f"archive entry {chosen!r} is not a regular file")
                    with source:
                        _write_atomic(source, target)
        except (zipfile.BadZipFile, tarfile.TarError, EOFError) as exc:
            raise ExtractionError(f"cannot read archive for {product_name}: {exc}") from exc
        LOGGER.info(
            "extracted binary",
            extra={"stage": "extract", "product": product_name, "path": str(target)},
        )
        return target
