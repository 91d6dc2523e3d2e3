"""
Data models for package publishing.

These Pydantic models describe the OCI documents this package builds (descriptors,
image manifests, the referrer index) and the values that flow through a publish
run, from staged archives to the final result.
"""
from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .storage.oci_media_types import OCI_IMAGE_MANIFEST, OCI_INDEX_MANIFEST

_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


def _validate_digest(value: str) -> str:
    if not _DIGEST_RE.match(value):
        raise ValueError(f"Invalid digest format: {value!r}. Expected sha256:<64 lowercase hex>")
    return value


class Descriptor(BaseModel):
    """Content-addressed pointer to a blob or manifest."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    media_type: str = Field(..., alias="mediaType", description="Media type of the referenced content")
    digest: str = Field(..., description="Content digest (sha256:...)")
    size: int = Field(..., ge=0, description="Exact byte length of the referenced content")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType", description="Artifact type")
    annotations: Optional[Dict[str, str]] = Field(default=None, description="Descriptor annotations")

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        return _validate_digest(v)


class ImageManifest(BaseModel):
    """OCI image manifest v1 (schemaVersion 2)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_IMAGE_MANIFEST, alias="mediaType")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    config: Descriptor
    layers: List[Descriptor]
    subject: Optional[Descriptor] = Field(default=None, description="Manifest this one refers to")
    annotations: Dict[str, str] = Field(default_factory=dict)


class IndexManifest(BaseModel):
    """OCI image index, used here as the referrer index."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=OCI_INDEX_MANIFEST, alias="mediaType")
    manifests: List[Descriptor]
    annotations: Dict[str, str] = Field(default_factory=dict)


class FileMetadata(BaseModel):
    """A staged archive on disk."""
    path: Path = Field(..., description="Archive path")
    sha256: str = Field(..., description="Archive digest (sha256:...)")
    size: int = Field(..., ge=0, description="Archive size in bytes")

    @field_validator("sha256")
    @classmethod
    def validate_sha256(cls, v: str) -> str:
        return _validate_digest(v)

    def read_bytes(self) -> bytes:
        return Path(self.path).read_bytes()


class ArchiveSet(BaseModel):
    """The tar.gz / zip pair produced for one package version."""
    tar_file: FileMetadata
    zip_file: FileMetadata


class PublishStatus(str, Enum):
    """Terminal states of a publish run."""
    PUBLISHED = "published"
    FAILED = "failed"


class PublishFailure(BaseModel):
    """Structured detail for the first fatal error of a run."""
    stage: str = Field(..., description="Stage that failed")
    message: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Exception class name")
    digest: Optional[str] = None
    tag: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    status_code: Optional[int] = None


class PublishResult(BaseModel):
    """
    Outcome of a publish run.

    A digest is only set once the registry has echoed it back and it matched
    the locally computed value.
    """
    status: PublishStatus
    package_manifest_digest: Optional[str] = None
    attestation_manifest_digest: Optional[str] = None
    referrer_index_digest: Optional[str] = None
    failure: Optional[PublishFailure] = None

    @computed_field
    @property
    def published(self) -> bool:
        return self.status == PublishStatus.PUBLISHED

    def outputs(self) -> Dict[str, str]:
        """Named outputs for the verified digests."""
        outputs = {}
        if self.attestation_manifest_digest:
            outputs["attestation-manifest-sha"] = self.attestation_manifest_digest
        if self.referrer_index_digest:
            outputs["referrer-index-manifest-sha"] = self.referrer_index_digest
        if self.package_manifest_digest:
            outputs["package-manifest-sha"] = self.package_manifest_digest
        return outputs


__all__ = [
    "Descriptor",
    "ImageManifest",
    "IndexManifest",
    "FileMetadata",
    "ArchiveSet",
    "PublishStatus",
    "PublishFailure",
    "PublishResult",
]
