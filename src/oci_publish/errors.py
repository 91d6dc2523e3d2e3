"""
Publish-level error classes.

Registry protocol errors live in ``storage.oci_errors``; these cover input
validation and the non-registry collaborators of a publish run.
"""
from __future__ import annotations

from typing import Optional


class PublishError(Exception):
    """
    Raised when a publish stage fails for a reason other than a registry error.

    Attributes:
        stage: Publish stage that failed
        digest: Digest the stage was working on, if any
    """

    def __init__(self, message: str, *, stage: Optional[str] = None,
                 digest: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.digest = digest


class AttestationError(PublishError):
    """
    Raised when the signing service fails to produce an attestation bundle.

    Attestation is not best-effort: this fails the whole run.
    """
    pass


class InvalidTagError(ValueError):
    """Raised when the run ref is not a semantic version tag."""
    pass


class SourceMismatchError(ValueError):
    """Raised when the checked-out commit does not match the tag being published."""
    pass


__all__ = ["PublishError", "AttestationError", "InvalidTagError", "SourceMismatchError"]
