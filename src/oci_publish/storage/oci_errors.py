"""
OCI registry error classes.

Provides a clear taxonomy of errors that can occur during OCI operations.
These errors are mapped from HTTP status codes and transport exceptions so
callers see a consistent interface. Every error records which operation
failed and the digest or tag it was addressing.
"""
from __future__ import annotations

from typing import Optional


class OciError(Exception):
    """
    Base class for all OCI registry errors.

    Attributes:
        operation: Registry operation that failed (e.g. "put_manifest")
        digest: Digest being addressed, if any
        tag: Tag being addressed, if any
        status_code: HTTP status returned by the registry, if any
    """

    def __init__(self, message: str, *, operation: Optional[str] = None,
                 digest: Optional[str] = None, tag: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.operation = operation
        self.digest = digest
        self.tag = tag
        self.status_code = status_code


class OciAuthError(OciError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (invalid credentials)
    - HTTP 403 Forbidden (insufficient permissions)
    - Token exchange is rejected
    """
    pass


class OciNotFound(OciError):
    """
    Resource not found in registry.

    Raised when:
    - HTTP 404 Not Found (repository or upload session doesn't exist)
    """
    pass


class OciDigestMismatch(OciError):
    """
    Content digest validation failed.

    Raised when:
    - put_manifest: server digest != locally computed digest
    - put_blob: blob content doesn't match expected digest
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class OciUnsupportedMediaType(OciError):
    """
    Media type not supported by registry.

    Raised when:
    - HTTP 415 (registry rejects manifest content type)
    """
    pass


class OciTooLarge(OciError):
    """
    Content too large for registry limits.

    Raised when:
    - HTTP 413 Payload Too Large
    """
    pass


class OciRateLimited(OciError):
    """
    Rate limit exceeded.

    Raised when:
    - HTTP 429 Too Many Requests
    """
    pass


class OciTransientError(OciError):
    """
    Retryable failure: connection errors, timeouts and HTTP 5xx.

    Only this class is retried by the registry client.
    """
    pass


class PublishTimeout(OciError):
    """The overall run deadline expired before the operation could complete."""
    pass


__all__ = [
    "OciError",
    "OciAuthError",
    "OciNotFound",
    "OciDigestMismatch",
    "OciUnsupportedMediaType",
    "OciTooLarge",
    "OciRateLimited",
    "OciTransientError",
    "PublishTimeout",
]
