"""
Test the publish orchestrator.

Uses the in-memory registry and signer to check stage ordering, digest
verification against what the registry echoes back, and the result object
for both terminal states.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from oci_publish.digest import canonicalize, referrer_tag, sha256_digest
from oci_publish.errors import AttestationError
from oci_publish.manifests import build_package_manifest
from oci_publish.models import PublishStatus
from oci_publish.publisher import Publisher, PublishStage, verify_digest
from oci_publish.storage.oci_errors import OciAuthError, OciDigestMismatch, OciTransientError
from oci_publish.storage.oci_media_types import (
    OCI_EMPTY_CONFIG_DIGEST, OCI_IMAGE_MANIFEST, OCI_INDEX_MANIFEST
)
from oci_publish.storage.registry_http import RegistryHTTP
from tests.fakes.fake_signer import FakeSigner, bundle_for

REPO = "octo-org/hello-world"
VERSION = "1.2.3"
CREATED = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
WRONG = "sha256:" + "0" * 64


def _publish(publisher, archives):
    return publisher.publish(archives, repository=REPO, repository_id="123", owner_id="456",
                             commit_sha="f" * 40, version=VERSION, created=CREATED)


def _package_digest(archives):
    manifest = build_package_manifest(archives.tar_file, archives.zip_file, REPO, "123", "456",
                                      "f" * 40, VERSION, CREATED)
    return sha256_digest(canonicalize(manifest))


class TestPublishWithAttestation:
    """Full runs with attestations enabled."""

    def test_published_with_all_digests(self, registry, signer, archives):
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.status == PublishStatus.PUBLISHED
        assert result.published is True
        assert result.failure is None
        assert result.package_manifest_digest == _package_digest(archives)
        assert result.attestation_manifest_digest is not None
        assert result.referrer_index_digest is not None

    def test_attestation_branch_runs_first(self, registry, signer, archives):
        _publish(Publisher(registry, REPO, signer=signer), archives)

        pushes = registry.manifest_pushes()
        assert [(media_type, tag) for _, media_type, tag, _ in pushes] == [
            (OCI_IMAGE_MANIFEST, None),
            (OCI_INDEX_MANIFEST, referrer_tag(_package_digest(archives))),
            (OCI_IMAGE_MANIFEST, VERSION),
        ]

    def test_blobs_uploaded_before_manifests(self, registry, signer, archives):
        _publish(Publisher(registry, REPO, signer=signer), archives)

        calls = registry.calls
        attestation_blobs = next(i for i, c in enumerate(calls) if c[0] == "ensure_blobs")
        package_blobs = next(i for i, c in enumerate(calls)
                             if c[0] == "ensure_blobs" and archives.tar_file.sha256 in c[1])
        pushes = [i for i, c in enumerate(calls) if c[0] == "put_manifest"]
        assert attestation_blobs < pushes[0]
        assert pushes[1] < package_blobs < pushes[2]
        assert registry.has_blob(REPO, archives.tar_file.sha256)
        assert registry.has_blob(REPO, archives.zip_file.sha256)
        assert registry.has_blob(REPO, OCI_EMPTY_CONFIG_DIGEST)

    def test_signer_receives_subject(self, registry, signer, archives):
        _publish(Publisher(registry, REPO, signer=signer), archives)

        subject_hex = _package_digest(archives).split(":", 1)[1]
        assert signer.requests == [(f"{REPO}@{VERSION}", subject_hex)]

    def test_attestation_manifest_points_at_package(self, registry, signer, archives):
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        subject = _package_digest(archives)
        attestation = json.loads(registry.get_manifest(REPO, result.attestation_manifest_digest))
        assert attestation["subject"]["digest"] == subject
        assert attestation["annotations"]["com.github.package.subject.digest"] == subject
        bundle = bundle_for(f"{REPO}@{VERSION}", subject.split(":", 1)[1])
        assert attestation["layers"][0]["digest"] == sha256_digest(bundle)
        assert registry.has_blob(REPO, sha256_digest(bundle))

    def test_referrer_index_tag_and_entry(self, registry, signer, archives):
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        tag = referrer_tag(result.package_manifest_digest)
        assert registry.tags(REPO)[tag] == result.referrer_index_digest
        index = json.loads(registry.get_manifest(REPO, tag))
        assert index["manifests"][0]["digest"] == result.attestation_manifest_digest

    def test_package_tagged_with_version(self, registry, signer, archives):
        result = _publish(Publisher(registry, REPO, signer=signer), archives)
        assert registry.tags(REPO)[VERSION] == result.package_manifest_digest

    def test_outputs(self, registry, signer, archives):
        result = _publish(Publisher(registry, REPO, signer=signer), archives)
        assert result.outputs() == {
            "attestation-manifest-sha": result.attestation_manifest_digest,
            "referrer-index-manifest-sha": result.referrer_index_digest,
            "package-manifest-sha": result.package_manifest_digest,
        }

    def test_rerun_skips_existing_blobs(self, registry, signer, archives):
        publisher = Publisher(registry, REPO, signer=signer)
        _publish(publisher, archives)
        registry.calls.clear()

        result = _publish(publisher, archives)
        assert result.published
        assert not [c for c in registry.calls if c[0] == "put_blob"]


class TestPublishWithoutAttestation:
    """Runs against registries without referrer support."""

    def test_only_package_pushed(self, registry, archives):
        result = _publish(Publisher(registry, REPO, attestations_enabled=False), archives)

        assert result.published
        assert result.attestation_manifest_digest is None
        assert result.referrer_index_digest is None
        assert [(p[1], p[2]) for p in registry.manifest_pushes()] == [(OCI_IMAGE_MANIFEST, VERSION)]
        assert result.outputs() == {"package-manifest-sha": result.package_manifest_digest}

    def test_signer_required_when_enabled(self, registry):
        with pytest.raises(ValueError, match="signer"):
            Publisher(registry, REPO)


class TestDigestVerification:
    """The registry must echo back the locally computed digest."""

    def test_package_mismatch_fails_without_output(self, registry, archives):
        registry.returned_digests[VERSION] = WRONG
        result = _publish(Publisher(registry, REPO, attestations_enabled=False), archives)

        assert result.status == PublishStatus.FAILED
        assert result.package_manifest_digest is None
        assert result.outputs() == {}
        assert result.failure.stage == PublishStage.VERIFY_PACKAGE.value
        assert result.failure.error_type == "OciDigestMismatch"
        assert result.failure.expected == _package_digest(archives)
        assert result.failure.actual == WRONG
        assert result.failure.tag == VERSION

    def test_attestation_mismatch_stops_before_index(self, registry, signer, archives):
        registry.returned_digests[None] = WRONG
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.failure.stage == PublishStage.VERIFY_ATTESTATION.value
        assert result.attestation_manifest_digest is None
        assert len(registry.manifest_pushes()) == 1

    def test_index_mismatch_stops_before_package(self, registry, signer, archives):
        tag = referrer_tag(_package_digest(archives))
        registry.returned_digests[tag] = WRONG
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.failure.stage == PublishStage.VERIFY_REFERRER_INDEX.value
        assert result.failure.tag == tag
        assert result.attestation_manifest_digest is not None
        assert result.referrer_index_digest is None
        assert VERSION not in registry.tags(REPO)

    def test_verify_digest_helper(self):
        verify_digest(PublishStage.VERIFY_PACKAGE, WRONG, WRONG)
        with pytest.raises(OciDigestMismatch) as exc_info:
            verify_digest(PublishStage.VERIFY_PACKAGE, WRONG, "sha256:" + "1" * 64, tag=VERSION)
        assert exc_info.value.expected == WRONG
        assert exc_info.value.tag == VERSION


class TestFailures:
    """Registry and collaborator failures end the run with a failed result."""

    def test_package_push_failure_leaves_dangling_attestation(self, registry, signer, archives):
        registry.manifest_errors[VERSION] = OciTransientError(
            "HTTP 503", operation="put_manifest", tag=VERSION, status_code=503
        )
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.status == PublishStatus.FAILED
        assert result.failure.stage == PublishStage.UPLOAD_PACKAGE.value
        assert result.failure.status_code == 503
        # Attestation and index stay in the registry and are reported
        assert result.attestation_manifest_digest is not None
        assert result.referrer_index_digest is not None
        assert result.package_manifest_digest is None
        assert "package-manifest-sha" not in result.outputs()

    def test_dangling_attestation_resolved_by_rerun(self, registry, signer, archives):
        registry.manifest_errors[VERSION] = OciTransientError("HTTP 503", tag=VERSION)
        first = _publish(Publisher(registry, REPO, signer=signer), archives)
        registry.manifest_errors.clear()

        second = _publish(Publisher(registry, REPO, signer=signer), archives)
        assert second.published
        assert second.attestation_manifest_digest == first.attestation_manifest_digest
        assert registry.tags(REPO)[referrer_tag(second.package_manifest_digest)] == \
            first.referrer_index_digest

    def test_signer_failure(self, registry, archives):
        signer = FakeSigner(error=AttestationError("signing service unavailable", stage="attestation"))
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.failure.stage == PublishStage.ATTESTATION.value
        assert result.failure.error_type == "AttestationError"
        assert registry.manifest_pushes() == []

    def test_blob_failure_carries_digest(self, registry, signer, archives):
        tar_digest = archives.tar_file.sha256
        registry.blob_errors[tar_digest] = OciAuthError("denied", digest=tar_digest, status_code=403)
        result = _publish(Publisher(registry, REPO, signer=signer), archives)

        assert result.failure.stage == PublishStage.UPLOAD_PACKAGE.value
        assert result.failure.digest == tar_digest
        assert result.failure.error_type == "OciAuthError"
        assert VERSION not in registry.tags(REPO)

    def test_unreadable_archive(self, registry, archives):
        archives.tar_file.path.unlink()
        result = _publish(Publisher(registry, REPO, attestations_enabled=False), archives)

        assert result.status == PublishStatus.FAILED
        assert result.failure.stage == PublishStage.UPLOAD_PACKAGE.value
        assert result.failure.error_type == "PublishError"
        assert result.failure.digest == archives.tar_file.sha256
        assert registry.manifest_pushes() == []

    def test_request_error_becomes_failed_result(self, settings, archives):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v2/":
                return httpx.Response(200)
            return httpx.Response(307, headers={"Location": str(request.url)})

        with RegistryHTTP(settings, transport=httpx.MockTransport(handler)) as client:
            result = _publish(Publisher(client, REPO, attestations_enabled=False), archives)

        assert result.status == PublishStatus.FAILED
        assert result.failure.stage == PublishStage.UPLOAD_PACKAGE.value
        assert result.failure.error_type == "OciError"
        assert result.failure.digest is not None
        assert result.outputs() == {}
