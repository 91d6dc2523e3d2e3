"""
Attestation signing collaborator.

The signing service is opaque: it receives a subject name and digest and
returns the bytes of a signed provenance bundle. This module holds the
protocol the publisher depends on and an HTTP client for the service.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

from .digest import sha256_digest, strip_digest_prefix
from .errors import AttestationError
from .settings import Settings
from .storage.oci_errors import PublishTimeout

logger = logging.getLogger(__name__)


@runtime_checkable
class AttestationSigner(Protocol):
    """Produces a signed provenance bundle for a subject."""

    def sign(self, subject_name: str, subject_digest: str) -> bytes:
        """
        Args:
            subject_name: Human-readable subject, e.g. "octo-org/hello@1.2.3"
            subject_digest: Hex SHA-256 of the subject manifest (no prefix)

        Returns:
            Opaque bundle bytes

        Raises:
            AttestationError: If the bundle could not be produced
        """
        ...


@dataclass(frozen=True)
class AttestationBundle:
    """Bundle bytes and their digest."""
    bundle: bytes
    digest: str

    @property
    def size(self) -> int:
        return len(self.bundle)


class SigningServiceClient:
    """
    HTTP client for the attestation signing service.

    Shares the run deadline with the registry client, so a slow signing call
    cannot outlive the run.
    """

    def __init__(self, settings: Settings, deadline: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        if not settings.signing_url:
            raise ValueError("signing_url is required when attestations are enabled")
        self.settings = settings
        self.deadline = deadline
        self.client = httpx.Client(
            timeout=httpx.Timeout(settings.http_timeout_s, connect=5.0),
            follow_redirects=True,
            transport=transport,
        )

    def sign(self, subject_name: str, subject_digest: str) -> bytes:
        headers = {"Accept": "application/json"}
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"

        payload = {"subjectName": subject_name, "subjectDigest": {"sha256": subject_digest}}
        digest = f"sha256:{subject_digest}"

        try:
            response = self.client.post(self.settings.signing_url, json=payload, headers=headers,
                                        timeout=self._timeout(digest))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AttestationError(
                f"Signing service returned {e.response.status_code} for {subject_name}",
                stage="attestation", digest=f"sha256:{subject_digest}"
            ) from e
        except httpx.RequestError as e:
            if self.deadline is not None and time.monotonic() >= self.deadline:
                raise PublishTimeout(f"Run deadline exceeded while signing {subject_name}: {e}",
                                     operation="sign", digest=digest) from e
            raise AttestationError(
                f"Network error contacting signing service for {subject_name}: {e}",
                stage="attestation", digest=f"sha256:{subject_digest}"
            ) from e

        if not response.content:
            raise AttestationError(f"Signing service returned an empty bundle for {subject_name}",
                                   stage="attestation", digest=f"sha256:{subject_digest}")
        return response.content

    def _timeout(self, digest: str) -> float:
        if self.deadline is None:
            return self.settings.http_timeout_s
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise PublishTimeout("Run deadline exceeded before signing",
                                 operation="sign", digest=digest)
        return min(self.settings.http_timeout_s, remaining)

    def close(self):
        self.client.close()


def generate_attestation(signer: AttestationSigner, repository: str, version: str,
                         manifest_digest: str) -> AttestationBundle:
    """
    Request a provenance bundle for a package manifest.

    Args:
        signer: Signing collaborator
        repository: Source repository as "owner/name"
        version: Semantic version string
        manifest_digest: Package manifest digest (sha256:...)

    Returns:
        Bundle bytes with their digest
    """
    subject_name = f"{repository}@{version}"
    subject_digest = strip_digest_prefix(manifest_digest)

    logger.info(f"Generating attestation {subject_name} for digest {subject_digest}")
    bundle = signer.sign(subject_name, subject_digest)
    return AttestationBundle(bundle=bundle, digest=sha256_digest(bundle))


__all__ = ["AttestationSigner", "AttestationBundle", "SigningServiceClient", "generate_attestation"]
