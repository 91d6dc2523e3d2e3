"""
Semantic version tags.

A publish run is triggered by a tag ref such as ``refs/tags/v1.2.3``; the
version (without the ``v``) becomes the OCI tag of the package manifest.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidTagError

TAG_REF_PREFIX = "refs/tags/"

# semver.org 2.0.0 grammar
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


@dataclass(frozen=True)
class SemverTag:
    """Parsed semantic version."""
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @property
    def raw(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        return f"{core}-{self.prerelease}" if self.prerelease else core

    def __str__(self) -> str:
        return self.raw


def parse_semver(version: str) -> SemverTag:
    """
    Parse a semantic version, with or without a leading ``v``.

    Build metadata (``+build``) is rejected because ``+`` is not allowed in
    OCI tags.

    Raises:
        InvalidTagError: If ``version`` is not a usable semantic version
    """
    candidate = version[1:] if version.startswith("v") else version
    match = _SEMVER_RE.match(candidate)
    if not match:
        raise InvalidTagError(
            f"{version} is not a valid semantic version tag, and so cannot be uploaded to the package."
        )
    if match.group(5):
        raise InvalidTagError(
            f"{version} carries build metadata, which cannot be used as a registry tag."
        )
    return SemverTag(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        prerelease=match.group(4),
    )


def parse_semver_tag_from_ref(ref: str) -> SemverTag:
    """
    Parse the semantic version from a git tag ref.

    Examples:
        >>> parse_semver_tag_from_ref("refs/tags/v1.2.3").raw
        '1.2.3'

    Raises:
        InvalidTagError: If ``ref`` is not a tag ref or the tag is not semver
    """
    if not ref.startswith(TAG_REF_PREFIX):
        raise InvalidTagError(f"The ref {ref} is not a valid tag reference.")
    return parse_semver(ref[len(TAG_REF_PREFIX):])


__all__ = ["SemverTag", "parse_semver", "parse_semver_tag_from_ref"]
