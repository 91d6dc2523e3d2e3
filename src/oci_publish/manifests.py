"""
OCI manifest construction.

Builds the three documents a publish run pushes: the package image manifest,
the attestation image manifest, and the referrer index that links the
attestation to the package.
"""
from __future__ import annotations

from datetime import datetime, timezone

from .models import Descriptor, FileMetadata, ImageManifest, IndexManifest
from .storage.oci_media_types import (
    ATTESTATION_TYPE,
    BUNDLE_CONTENT_ANNOTATION,
    BUNDLE_CONTENT_DSSE,
    BUNDLE_PREDICATE_TYPE_ANNOTATION,
    CREATED_ANNOTATION,
    OCI_EMPTY_CONFIG,
    OCI_EMPTY_CONFIG_DIGEST,
    OCI_EMPTY_CONFIG_SIZE,
    OCI_IMAGE_MANIFEST,
    PACKAGE_ARTIFACT_TYPE,
    PACKAGE_TAR_LAYER,
    PACKAGE_TYPE,
    PACKAGE_TYPE_ANNOTATION,
    PACKAGE_VERSION_ANNOTATION,
    PACKAGE_ZIP_LAYER,
    REFERRER_INDEX_TYPE,
    SIGSTORE_BUNDLE,
    SLSA_PROVENANCE_PREDICATE,
    SOURCE_COMMIT_ANNOTATION,
    SOURCE_REPO_ANNOTATION,
    SOURCE_REPO_ID_ANNOTATION,
    SOURCE_REPO_OWNER_ID_ANNOTATION,
    SUBJECT_DIGEST_ANNOTATION,
    SUBJECT_SIZE_ANNOTATION,
    TAR_DIGEST_ANNOTATION,
    TITLE_ANNOTATION,
    ZIP_DIGEST_ANNOTATION,
)

EMPTY_CONFIG_DESCRIPTOR = Descriptor(
    media_type=OCI_EMPTY_CONFIG,
    digest=OCI_EMPTY_CONFIG_DIGEST,
    size=OCI_EMPTY_CONFIG_SIZE,
)


def format_created(created: datetime) -> str:
    """
    Format a timestamp as RFC3339 UTC with millisecond precision.

    Naive datetimes are taken to be UTC.

    Examples:
        >>> format_created(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        '2024-01-02T03:04:05.000Z'
    """
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    utc = created.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _check_archive(label: str, archive: FileMetadata) -> None:
    if not archive.sha256:
        raise ValueError(f"{label} descriptor has an empty digest")
    if archive.size <= 0:
        raise ValueError(f"{label} descriptor {archive.sha256} has zero size")


def build_package_manifest(tar_file: FileMetadata, zip_file: FileMetadata,
                           repository: str, repository_id: str, owner_id: str,
                           commit_sha: str, version: str,
                           created: datetime) -> ImageManifest:
    """
    Build the package (subject) image manifest.

    Args:
        tar_file: Staged tar.gz archive
        zip_file: Staged zip archive
        repository: Source repository as "owner/name"
        repository_id: Source repository ID
        owner_id: Source repository owner ID
        commit_sha: Commit the archives were built from
        version: Semantic version string
        created: Creation timestamp

    Returns:
        Image manifest with layers [tar, zip] and the empty config

    Raises:
        ValueError: If either archive has zero size or an empty digest
    """
    _check_archive("tar", tar_file)
    _check_archive("zip", zip_file)

    sanitized_repo = repository.replace("/", "-")

    tar_layer = Descriptor(
        media_type=PACKAGE_TAR_LAYER,
        digest=tar_file.sha256,
        size=tar_file.size,
        annotations={TITLE_ANNOTATION: f"{sanitized_repo}_{version}.tar.gz"},
    )
    zip_layer = Descriptor(
        media_type=PACKAGE_ZIP_LAYER,
        digest=zip_file.sha256,
        size=zip_file.size,
        annotations={TITLE_ANNOTATION: f"{sanitized_repo}_{version}.zip"},
    )

    return ImageManifest(
        artifact_type=PACKAGE_ARTIFACT_TYPE,
        config=EMPTY_CONFIG_DESCRIPTOR,
        layers=[tar_layer, zip_layer],
        annotations={
            CREATED_ANNOTATION: format_created(created),
            TAR_DIGEST_ANNOTATION: tar_file.sha256,
            ZIP_DIGEST_ANNOTATION: zip_file.sha256,
            PACKAGE_TYPE_ANNOTATION: PACKAGE_TYPE,
            PACKAGE_VERSION_ANNOTATION: version,
            SOURCE_REPO_ANNOTATION: repository,
            SOURCE_REPO_ID_ANNOTATION: str(repository_id),
            SOURCE_REPO_OWNER_ID_ANNOTATION: str(owner_id),
            SOURCE_COMMIT_ANNOTATION: commit_sha,
        },
    )


def build_attestation_manifest(bundle_size: int, bundle_digest: str,
                               subject_size: int, subject_digest: str,
                               created: datetime) -> ImageManifest:
    """
    Build the attestation image manifest for a signed provenance bundle.

    The subject digest and size are recorded both in the ``subject`` field and
    in annotations, so the attestation describes what it attests even when
    found without the referrer index.
    """
    created_str = format_created(created)

    return ImageManifest(
        artifact_type=SIGSTORE_BUNDLE,
        config=EMPTY_CONFIG_DESCRIPTOR,
        layers=[
            Descriptor(media_type=SIGSTORE_BUNDLE, digest=bundle_digest, size=bundle_size),
        ],
        subject=Descriptor(media_type=OCI_IMAGE_MANIFEST, digest=subject_digest, size=subject_size),
        annotations={
            CREATED_ANNOTATION: created_str,
            PACKAGE_TYPE_ANNOTATION: ATTESTATION_TYPE,
            BUNDLE_CONTENT_ANNOTATION: BUNDLE_CONTENT_DSSE,
            BUNDLE_PREDICATE_TYPE_ANNOTATION: SLSA_PROVENANCE_PREDICATE,
            SUBJECT_DIGEST_ANNOTATION: subject_digest,
            SUBJECT_SIZE_ANNOTATION: str(subject_size),
        },
    )


def build_referrer_index(attestation_digest: str, attestation_size: int,
                         created: datetime) -> IndexManifest:
    """
    Build the referrer index pointing at a single attestation manifest.

    The tag the index is pushed under comes from the subject digest
    (``digest.referrer_tag``) and is not stored in the index.
    """
    created_str = format_created(created)

    attestation = Descriptor(
        media_type=OCI_IMAGE_MANIFEST,
        digest=attestation_digest,
        size=attestation_size,
        artifact_type=SIGSTORE_BUNDLE,
        annotations={
            CREATED_ANNOTATION: created_str,
            PACKAGE_TYPE_ANNOTATION: ATTESTATION_TYPE,
            BUNDLE_CONTENT_ANNOTATION: BUNDLE_CONTENT_DSSE,
            BUNDLE_PREDICATE_TYPE_ANNOTATION: SLSA_PROVENANCE_PREDICATE,
        },
    )

    return IndexManifest(
        manifests=[attestation],
        annotations={
            CREATED_ANNOTATION: created_str,
            PACKAGE_TYPE_ANNOTATION: REFERRER_INDEX_TYPE,
        },
    )


__all__ = [
    "EMPTY_CONFIG_DESCRIPTOR",
    "format_created",
    "build_package_manifest",
    "build_attestation_manifest",
    "build_referrer_index",
]
