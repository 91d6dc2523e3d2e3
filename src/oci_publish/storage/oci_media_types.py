"""
OCI media types and constants.

Single source of truth for all OCI-related media types, annotation keys and
the fixed empty config blob.
"""
from __future__ import annotations

# OCI standard manifest types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX_MANIFEST = "application/vnd.oci.image.index.v1+json"
OCI_EMPTY_CONFIG = "application/vnd.oci.empty.v1+json"

# Package layers
PACKAGE_ARTIFACT_TYPE = "application/vnd.github.actions.package.v1+json"
PACKAGE_TAR_LAYER = "application/vnd.github.actions.package.layer.v1.tar+gzip"
PACKAGE_ZIP_LAYER = "application/vnd.github.actions.package.layer.v1.zip"

# Attestation bundle layer (also used as the attestation artifactType)
SIGSTORE_BUNDLE = "application/vnd.dev.sigstore.bundle.v0.3+json"

# Empty config for minimal OCI images (always {})
OCI_EMPTY_CONFIG_BYTES = b"{}"
OCI_EMPTY_CONFIG_DIGEST = "sha256:44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a"
OCI_EMPTY_CONFIG_SIZE = 2

# Standard OCI annotations
CREATED_ANNOTATION = "org.opencontainers.image.created"
TITLE_ANNOTATION = "org.opencontainers.image.title"

# Package annotations
PACKAGE_TYPE_ANNOTATION = "com.github.package.type"
PACKAGE_VERSION_ANNOTATION = "com.github.package.version"
SOURCE_REPO_ANNOTATION = "com.github.source.repo"
SOURCE_REPO_ID_ANNOTATION = "com.github.source.repo.id"
SOURCE_REPO_OWNER_ID_ANNOTATION = "com.github.source.repo.owner.id"
SOURCE_COMMIT_ANNOTATION = "com.github.source.commit"
TAR_DIGEST_ANNOTATION = "action.tar.gz.digest"
ZIP_DIGEST_ANNOTATION = "action.zip.digest"

# Attestation annotations
BUNDLE_CONTENT_ANNOTATION = "dev.sigstore.bundle.content"
BUNDLE_PREDICATE_TYPE_ANNOTATION = "dev.sigstore.bundle.predicateType"
SUBJECT_DIGEST_ANNOTATION = "com.github.package.subject.digest"
SUBJECT_SIZE_ANNOTATION = "com.github.package.subject.size"

BUNDLE_CONTENT_DSSE = "dsse-envelope"
SLSA_PROVENANCE_PREDICATE = "https://slsa.dev/provenance/v1"

# Values for PACKAGE_TYPE_ANNOTATION
PACKAGE_TYPE = "actions_oci_pkg"
ATTESTATION_TYPE = "actions_oci_pkg_attestation"
REFERRER_INDEX_TYPE = "actions_oci_pkg_referrer_index"

# Referrer tag schema: sha256:<hex> -> sha256-<hex>
DIGEST_PREFIX = "sha256:"
REFERRER_TAG_PREFIX = "sha256-"


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "OCI_INDEX_MANIFEST",
    "OCI_EMPTY_CONFIG",
    "PACKAGE_ARTIFACT_TYPE",
    "PACKAGE_TAR_LAYER",
    "PACKAGE_ZIP_LAYER",
    "SIGSTORE_BUNDLE",
    "OCI_EMPTY_CONFIG_BYTES",
    "OCI_EMPTY_CONFIG_DIGEST",
    "OCI_EMPTY_CONFIG_SIZE",
    "CREATED_ANNOTATION",
    "TITLE_ANNOTATION",
    "PACKAGE_TYPE_ANNOTATION",
    "PACKAGE_VERSION_ANNOTATION",
    "SOURCE_REPO_ANNOTATION",
    "SOURCE_REPO_ID_ANNOTATION",
    "SOURCE_REPO_OWNER_ID_ANNOTATION",
    "SOURCE_COMMIT_ANNOTATION",
    "TAR_DIGEST_ANNOTATION",
    "ZIP_DIGEST_ANNOTATION",
    "BUNDLE_CONTENT_ANNOTATION",
    "BUNDLE_PREDICATE_TYPE_ANNOTATION",
    "SUBJECT_DIGEST_ANNOTATION",
    "SUBJECT_SIZE_ANNOTATION",
    "BUNDLE_CONTENT_DSSE",
    "SLSA_PROVENANCE_PREDICATE",
    "PACKAGE_TYPE",
    "ATTESTATION_TYPE",
    "REFERRER_INDEX_TYPE",
    "DIGEST_PREFIX",
    "REFERRER_TAG_PREFIX",
]
