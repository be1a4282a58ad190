"""Manifest parsing and artifact integrity verification."""

from __future__ import annotations

import hashlib
from pathlib import Path

import httpx
import pytest

from ReleaseCatalog.checksums import IntegrityVerifier, parse_manifest, sha256_file
from ReleaseCatalog.errors import (
    DigestMismatchError,
    ManifestParseError,
    NameParseError,
    NetworkError,
    SumNotFoundError,
)
from ReleaseCatalog.settings import CatalogSettings

from ._helpers import FakeReleaseServer, manifest_for

ARTIFACT = "terraform_0.12.3_linux_amd64.zip"
MANIFEST_PATH = "/terraform/0.12.3/terraform_0.12.3_SHA256SUMS"
CONTENT = b"terraform archive bytes"


@pytest.fixture
def verifier(client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer) -> IntegrityVerifier:
    server.add(
        MANIFEST_PATH,
        manifest_for({ARTIFACT: CONTENT, "terraform_0.12.3_darwin_amd64.zip": b"other"}),
    )
    return IntegrityVerifier(client, settings)


def test_two_line_manifest_parses() -> None:
    text = f"{'a' * 64}  one_1.0.0_linux_amd64.zip\n{'B' * 64} two_1.0.0_linux_amd64.zip\n"
    digests = parse_manifest(text)
    assert len(digests) == 2
    assert digests["two_1.0.0_linux_amd64.zip"] == bytes.fromhex("b" * 64)


def test_blank_lines_are_ignored() -> None:
    assert len(parse_manifest(f"\n{'a' * 64} x_1_linux_amd64.zip\n\n   \n")) == 1


@pytest.mark.parametrize(
    "bad_line",
    [
        f"{'c' * 64} extra field here",
        f"{'c' * 64}",
        "nothex  x_1_linux_amd64.zip",
        f"{'c' * 63}  x_1_linux_amd64.zip",
    ],
)
def test_malformed_line_fails_whole_manifest(bad_line: str) -> None:
    text = f"{'a' * 64}  one_1.0.0_linux_amd64.zip\n{'b' * 64}  two_1.0.0_linux_amd64.zip\n{bad_line}\n"
    with pytest.raises(ManifestParseError):
        parse_manifest(text)


def test_verify_accepts_matching_content(verifier: IntegrityVerifier) -> None:
    assert verifier.verify(ARTIFACT, CONTENT) == hashlib.sha256(CONTENT).hexdigest()


def test_verify_rejects_single_flipped_byte(verifier: IntegrityVerifier) -> None:
    tampered = bytearray(CONTENT)
    tampered[0] ^= 0x01
    with pytest.raises(DigestMismatchError) as excinfo:
        verifier.verify(ARTIFACT, bytes(tampered))
    assert excinfo.value.expected == hashlib.sha256(CONTENT).hexdigest()
    assert excinfo.value.actual == hashlib.sha256(bytes(tampered)).hexdigest()


def test_verify_requires_manifest_entry(verifier: IntegrityVerifier) -> None:
    with pytest.raises(SumNotFoundError):
        verifier.verify("terraform_0.12.3_windows_amd64.zip", CONTENT)


def test_bad_name_fails_before_any_request(verifier: IntegrityVerifier, server: FakeReleaseServer) -> None:
    with pytest.raises(NameParseError):
        verifier.verify("bad-name.zip", CONTENT)
    assert server.requests == []


def test_manifest_fetched_once_per_release(verifier: IntegrityVerifier, server: FakeReleaseServer) -> None:
    verifier.verify(ARTIFACT, CONTENT)
    verifier.verify("terraform_0.12.3_darwin_amd64.zip", b"other")
    assert server.hits(MANIFEST_PATH) == 1


def test_missing_manifest_is_network_error(client: httpx.Client, settings: CatalogSettings) -> None:
    verifier = IntegrityVerifier(client, settings)
    with pytest.raises(NetworkError) as excinfo:
        verifier.verify("nomad_0.9.0_linux_amd64.zip", b"data")
    assert excinfo.value.status_code == 404


def test_verify_file_streams_from_disk(verifier: IntegrityVerifier, tmp_path: Path) -> None:
    path = tmp_path / ARTIFACT
    path.write_bytes(CONTENT)
    assert sha256_file(path) == hashlib.sha256(CONTENT).digest()
    assert verifier.verify_file(path) == hashlib.sha256(CONTENT).hexdigest()
