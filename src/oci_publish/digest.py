"""
Canonical serialization and content digests.

Every manifest digest in a publish run comes from ``canonicalize``: aliased
field names, ``None`` fields omitted, sorted keys, no whitespace, ASCII-only.
The same logical manifest therefore always produces the same bytes and digest,
regardless of how or in which order its fields were built.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Union

from pydantic import BaseModel

from .storage.oci_media_types import DIGEST_PREFIX, REFERRER_TAG_PREFIX

ManifestLike = Union[BaseModel, Mapping[str, Any]]


def canonicalize(manifest: ManifestLike) -> bytes:
    """
    Serialize a manifest to its canonical JSON bytes.

    Args:
        manifest: Pydantic manifest model or plain mapping

    Returns:
        UTF-8 encoded canonical JSON
    """
    if isinstance(manifest, BaseModel):
        data = manifest.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data = dict(manifest)

    manifest_json = json.dumps(
        data,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=True
    )
    return manifest_json.encode('utf-8')


def sha256_digest(data: bytes) -> str:
    """Return ``sha256:<hex>`` for raw bytes."""
    return f"{DIGEST_PREFIX}{hashlib.sha256(data).hexdigest()}"


def manifest_digest(manifest: ManifestLike) -> str:
    """Digest of a manifest's canonical bytes."""
    return sha256_digest(canonicalize(manifest))


def size_in_bytes(content: Union[bytes, ManifestLike]) -> int:
    """Exact byte length of raw content, or of a manifest's canonical bytes."""
    if isinstance(content, (bytes, bytearray)):
        return len(content)
    return len(canonicalize(content))


def strip_digest_prefix(digest: str) -> str:
    """Return the hex part of a ``sha256:<hex>`` digest."""
    if digest.startswith(DIGEST_PREFIX):
        return digest[len(DIGEST_PREFIX):]
    return digest


def referrer_tag(subject_digest: str) -> str:
    """
    Tag under which the referrer index for a subject is pushed.

    Examples:
        >>> referrer_tag("sha256:deadbeef")
        'sha256-deadbeef'
    """
    if not subject_digest.startswith(DIGEST_PREFIX) or len(subject_digest) == len(DIGEST_PREFIX):
        raise ValueError(f"Invalid subject digest: {subject_digest!r}")
    return REFERRER_TAG_PREFIX + strip_digest_prefix(subject_digest)


__all__ = [
    "canonicalize",
    "sha256_digest",
    "manifest_digest",
    "size_in_bytes",
    "strip_digest_prefix",
    "referrer_tag",
]
