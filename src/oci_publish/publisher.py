"""
Package publishing.

Sequences a publish run: build the package manifest, optionally attest it and
link the attestation through a referrer index, upload blobs before the
manifests that reference them, and verify every digest the registry echoes
back against the one computed locally.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from .attestation import AttestationSigner, generate_attestation
from .digest import canonicalize, manifest_digest, referrer_tag, sha256_digest
from .errors import PublishError
from .manifests import build_attestation_manifest, build_package_manifest, build_referrer_index
from .models import ArchiveSet, PublishFailure, PublishResult, PublishStatus
from .storage.oci_errors import OciDigestMismatch, OciError
from .storage.oci_media_types import (
    OCI_EMPTY_CONFIG_BYTES,
    OCI_EMPTY_CONFIG_DIGEST,
    OCI_IMAGE_MANIFEST,
    OCI_INDEX_MANIFEST,
)
from .storage.oci_registry import OciRegistry

logger = logging.getLogger(__name__)


class PublishStage(str, Enum):
    """Stages of a publish run, in execution order."""
    BUILD = "build"
    ATTESTATION = "attestation"
    UPLOAD_ATTESTATION = "upload-attestation"
    VERIFY_ATTESTATION = "verify-attestation"
    UPLOAD_REFERRER_INDEX = "upload-referrer-index"
    VERIFY_REFERRER_INDEX = "verify-referrer-index"
    UPLOAD_PACKAGE = "upload-package"
    VERIFY_PACKAGE = "verify-package"


def verify_digest(stage: PublishStage, expected: str, actual: str, tag: Optional[str] = None) -> None:
    """
    Fail when the registry stored something other than what was sent.

    Raises:
        OciDigestMismatch: If ``actual`` differs from ``expected``
    """
    if expected != actual:
        raise OciDigestMismatch(
            f"Unexpected digest returned at {stage.value}. Expected {expected}, got {actual}",
            expected=expected, actual=actual, operation=stage.value, digest=expected, tag=tag
        )


def _failure_from(error: Exception, stage: PublishStage) -> PublishFailure:
    return PublishFailure(
        stage=stage.value,
        message=str(error),
        error_type=type(error).__name__,
        digest=getattr(error, "digest", None),
        tag=getattr(error, "tag", None),
        expected=getattr(error, "expected", None),
        actual=getattr(error, "actual", None),
        status_code=getattr(error, "status_code", None),
    )


class Publisher:
    """
    Publish orchestrator.

    The registry client reports what happened; this class decides that any
    registry or collaborator error ends the run, and turns it into a failed
    ``PublishResult`` naming the stage and digest involved.
    """

    def __init__(self, registry: OciRegistry, repo: str,
                 signer: Optional[AttestationSigner] = None,
                 attestations_enabled: bool = True):
        """
        Args:
            registry: Registry push client
            repo: OCI repository path to publish into
            signer: Signing collaborator (required when attestations are enabled)
            attestations_enabled: False for registries without referrer support
        """
        if attestations_enabled and signer is None:
            raise ValueError("An attestation signer is required when attestations are enabled")
        self.registry = registry
        self.repo = repo
        self.signer = signer
        self.attestations_enabled = attestations_enabled

    def publish(self, archives: ArchiveSet, repository: str, repository_id: str,
                owner_id: str, commit_sha: str, version: str,
                created: Optional[datetime] = None) -> PublishResult:
        """
        Publish a package version and, when enabled, its attestation.

        Args:
            archives: Staged tar.gz / zip pair
            repository: Source repository as "owner/name"
            repository_id: Source repository ID
            owner_id: Source repository owner ID
            commit_sha: Commit the archives were built from
            version: Semantic version, used as the package manifest tag
            created: Creation timestamp (defaults to now)

        Returns:
            ``PublishResult`` in the published or failed state. Digests are
            present only for stages whose verification succeeded.
        """
        stage = PublishStage.BUILD
        verified: Dict[str, str] = {}

        try:
            manifest = build_package_manifest(
                archives.tar_file, archives.zip_file, repository, repository_id,
                owner_id, commit_sha, version, created or datetime.now(timezone.utc)
            )
            manifest_bytes = canonicalize(manifest)
            subject_digest = sha256_digest(manifest_bytes)

            if self.attestations_enabled:
                stage = PublishStage.ATTESTATION
                attestation = generate_attestation(self.signer, repository, version, subject_digest)

                attestation_created = created or datetime.now(timezone.utc)
                attestation_manifest = build_attestation_manifest(
                    attestation.size, attestation.digest,
                    len(manifest_bytes), subject_digest, attestation_created
                )
                attestation_bytes = canonicalize(attestation_manifest)
                attestation_digest = sha256_digest(attestation_bytes)

                index = build_referrer_index(attestation_digest, len(attestation_bytes),
                                             attestation_created)
                index_bytes = canonicalize(index)
                index_digest = manifest_digest(index)
                tag = referrer_tag(subject_digest)

                logger.info(f"Publishing attestation {attestation_digest} for subject {subject_digest}")
                stage = PublishStage.UPLOAD_ATTESTATION
                self.registry.ensure_blobs(self.repo, {
                    OCI_EMPTY_CONFIG_DIGEST: OCI_EMPTY_CONFIG_BYTES,
                    attestation.digest: attestation.bundle,
                })
                returned = self.registry.put_manifest(self.repo, OCI_IMAGE_MANIFEST, attestation_bytes)

                stage = PublishStage.VERIFY_ATTESTATION
                verify_digest(stage, attestation_digest, returned)
                verified["attestation_manifest_digest"] = returned
                logger.info(f"Uploaded attestation {returned}")

                logger.info(f"Publishing referrer index {index_digest} with tag {tag} "
                            f"for attestation {attestation_digest} and subject {subject_digest}")
                stage = PublishStage.UPLOAD_REFERRER_INDEX
                returned = self.registry.put_manifest(self.repo, OCI_INDEX_MANIFEST, index_bytes, tag)

                stage = PublishStage.VERIFY_REFERRER_INDEX
                verify_digest(stage, index_digest, returned, tag=tag)
                verified["referrer_index_digest"] = returned
                logger.info(f"Uploaded referrer index {returned}")

            logger.info(f"Creating package {subject_digest} for release with semver: {version}")
            stage = PublishStage.UPLOAD_PACKAGE
            files = {OCI_EMPTY_CONFIG_DIGEST: OCI_EMPTY_CONFIG_BYTES}
            for archive in (archives.tar_file, archives.zip_file):
                try:
                    files[archive.sha256] = archive.read_bytes()
                except OSError as e:
                    raise PublishError(f"Could not read archive {archive.path}: {e}",
                                       stage=stage.value, digest=archive.sha256) from e
            self.registry.ensure_blobs(self.repo, files)
            returned = self.registry.put_manifest(self.repo, OCI_IMAGE_MANIFEST, manifest_bytes, version)

            stage = PublishStage.VERIFY_PACKAGE
            verify_digest(stage, subject_digest, returned, tag=version)
            verified["package_manifest_digest"] = returned

        except (OciError, PublishError) as e:
            logger.error(f"Publish failed at {stage.value}: {e}")
            return PublishResult(status=PublishStatus.FAILED, failure=_failure_from(e, stage), **verified)

        logger.info(f"Published {self.repo}:{version} as {verified['package_manifest_digest']}")
        return PublishResult(status=PublishStatus.PUBLISHED, **verified)


__all__ = ["Publisher", "PublishStage", "verify_digest"]
