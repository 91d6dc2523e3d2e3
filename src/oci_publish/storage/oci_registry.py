"""
OCI Registry protocol definition.

Defines the repo-aware push interface the publisher depends on. The HTTP
client in ``registry_http`` implements it; tests substitute an in-memory fake.
"""
from __future__ import annotations

from typing import BinaryIO, Dict, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class OciRegistry(Protocol):
    """
    Repo-aware OCI registry push operations.

    All operations are explicitly scoped to a repository, which reflects
    how the OCI Distribution API works.
    """

    def blob_exists(self, repo: str, digest: str) -> bool:
        """
        Check if blob exists in repository.

        Args:
            repo: Repository path (e.g., "octo-org/hello-world")
            digest: Content digest to check

        Returns:
            True if blob exists, False if the registry reports it missing

        Raises:
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def put_blob(self, repo: str, digest: str, data: Union[bytes, BinaryIO]) -> None:
        """
        Upload a blob through an upload session, addressed by its digest.

        Raises:
            OciDigestMismatch: If content doesn't match digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def ensure_blob(self, repo: str, digest: str, data: Union[bytes, BinaryIO]) -> bool:
        """
        Upload blob only if it doesn't already exist.

        Returns:
            True if the blob was uploaded, False if it was already present
        """
        ...

    def ensure_blobs(self, repo: str, files: Dict[str, bytes]) -> Dict[str, bool]:
        """
        Ensure every blob of a file set exists before returning.

        Args:
            repo: Repository path
            files: Mapping of digest to blob content

        Returns:
            Mapping of digest to whether it was uploaded
        """
        ...

    def put_manifest(self, repo: str, media_type: str, payload: bytes,
                     tag: Optional[str] = None) -> str:
        """
        PUT manifest with explicit media type.

        Args:
            repo: Repository path
            media_type: Manifest media type (e.g., OCI_IMAGE_MANIFEST)
            payload: Canonical manifest bytes
            tag: Tag to apply; the manifest is pushed by digest when None

        Returns:
            Digest reported by the registry, unmodified. Comparing it with the
            local digest is the caller's job.

        Raises:
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...


__all__ = ["OciRegistry"]
