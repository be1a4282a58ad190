"""Semantic version parsing and precedence ordering.

Release listings publish versions such as ``0.12.3``, ``v1.5.0``,
``0.12.0-beta1``, ``1.0.0-rc.2`` and ``1.9.2+ent``.  :class:`SemanticVersion`
parses them into numeric segments, pre-release identifiers, and build
metadata, and defines a total order consistent with semantic version
precedence:

* numeric comparison of the release segments (missing segments count as zero);
* a pre-release sorts before the corresponding release;
* pre-release identifiers compare numerically when both are numeric, numeric
  identifiers sort before alphanumeric ones, and a shorter identifier list
  sorts first when all shared identifiers are equal.

Build metadata carries no precedence.  It is only used as a final tie-break so
that distinct strings such as ``1.9.2`` and ``1.9.2+ent`` never compare equal
and the catalog can keep both.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple, Union

from .errors import VersionParseError

__all__ = ["SemanticVersion", "parse_version"]

_VERSION_PATTERN = re.compile(
    r"""
    ^v?
    (?P<release>[0-9]+(?:\.[0-9]+)*)
    (?:
        -(?P<pre>[0-9A-Za-z~-]+(?:\.[0-9A-Za-z~-]+)*)
      |
        (?P<attached>[A-Za-z~][0-9A-Za-z~-]*(?:\.[0-9A-Za-z~-]+)*)
    )?
    (?:\+(?P<meta>[0-9A-Za-z~-]+(?:\.[0-9A-Za-z~-]+)*))?
    $
    """,
    re.VERBOSE,
)

_IdentifierKey = Tuple[int, int, str]


def _identifier_key(identifier: str) -> _IdentifierKey:
    if identifier.isdigit():
        return (0, int(identifier), "")
    return (1, 0, identifier)


class SemanticVersion:
    """Parsed version with semantic version precedence.

    Instances are immutable and hashable; equality follows the ordering, so
    ``SemanticVersion.parse("v1.2") == SemanticVersion.parse("1.2.0")``.

    Examples:
        >>> SemanticVersion.parse("0.12.0-beta1") < SemanticVersion.parse("0.12.0")
        True
        >>> str(SemanticVersion.parse("v1.2"))
        'v1.2'
    """

    __slots__ = ("original", "segments", "prerelease", "metadata", "_key")

    def __init__(
        self,
        segments: Tuple[int, ...],
        prerelease: Tuple[str, ...] = (),
        metadata: Optional[str] = None,
        *,
        original: Optional[str] = None,
    ) -> None:
        padded = tuple(segments) + (0,) * max(0, 3 - len(segments))
        while len(padded) > 3 and padded[-1] == 0:
            padded = padded[:-1]
        self.segments = padded
        self.prerelease = tuple(prerelease)
        self.metadata = metadata or None
        self.original = original if original is not None else self._render()
        pre_key = (0, tuple(_identifier_key(item) for item in self.prerelease)) if self.prerelease else (1, ())
        meta_key = (1, self.metadata) if self.metadata else (0, "")
        self._key = (self.segments, pre_key, meta_key)

    @classmethod
    def parse(cls, text: str) -> "SemanticVersion":
        """Parse ``text`` or raise :class:`VersionParseError`."""

        if not isinstance(text, str):
            raise VersionParseError(f"version must be a string, got {type(text).__name__}")
        candidate = text.strip()
        match = _VERSION_PATTERN.match(candidate)
        if not match:
            raise VersionParseError(f"malformed version: {text!r}")
        segments = tuple(int(part) for part in match.group("release").split("."))
        pre = match.group("pre") or match.group("attached")
        prerelease = tuple(pre.split(".")) if pre else ()
        return cls(segments, prerelease, match.group("meta"), original=candidate)

    def _render(self) -> str:
        text = ".".join(str(part) for part in self.segments)
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.metadata:
            text += "+" + self.metadata
        return text

    @property
    def major(self) -> int:
        return self.segments[0]

    @property
    def minor(self) -> int:
        return self.segments[1]

    @property
    def patch(self) -> int:
        return self.segments[2]

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def __str__(self) -> str:
        return self.original

    def __repr__(self) -> str:
        return f"SemanticVersion({self.original!r})"

    def __hash__(self) -> int:
        return hash(self._key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key < other._key

    def __le__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key <= other._key

    def __gt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key > other._key

    def __ge__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key >= other._key


def parse_version(value: Union[str, SemanticVersion]) -> SemanticVersion:
    """Return ``value`` as a :class:`SemanticVersion`, parsing strings."""

    if isinstance(value, SemanticVersion):
        return value
    return SemanticVersion.parse(value)
