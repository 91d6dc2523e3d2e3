"""
Fake AttestationSigner implementation for testing.

Produces a deterministic bundle derived from the subject so tests can predict
the bundle digest without a signing service.
"""
from __future__ import annotations

import json
from typing import List, Optional, Tuple

from oci_publish.attestation import AttestationSigner
from oci_publish.errors import AttestationError


class FakeSigner(AttestationSigner):
    """
    Test-only signer.

    Args:
        error: If set, raised from every ``sign`` call
    """

    def __init__(self, error: Optional[AttestationError] = None):
        self.error = error
        self.requests: List[Tuple[str, str]] = []

    def sign(self, subject_name: str, subject_digest: str) -> bytes:
        self.requests.append((subject_name, subject_digest))
        if self.error is not None:
            raise self.error
        return bundle_for(subject_name, subject_digest)


def bundle_for(subject_name: str, subject_digest: str) -> bytes:
    """The bundle bytes FakeSigner returns for a subject."""
    return json.dumps({
        "mediaType": "application/vnd.dev.sigstore.bundle.v0.3+json",
        "subject": {"name": subject_name, "digest": {"sha256": subject_digest}},
    }, sort_keys=True).encode()
