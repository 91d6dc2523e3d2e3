"""
Operations Facade - Application service layer.

Provides a clean interface between the CLI and the publishing core: resolves
the version from the run ref, verifies the checkout, stages and archives the
workspace, and hands the archives to the publisher.
"""
from __future__ import annotations

import logging
import tempfile
import time
from datetime import datetime, timezone
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..archives import create_archives, stage_files
from ..attestation import AttestationSigner, SigningServiceClient
from ..digest import canonicalize, sha256_digest
from ..manifests import build_package_manifest
from ..models import ArchiveSet, PublishResult
from ..publisher import Publisher
from ..settings import Settings
from ..source import ensure_tag_and_ref_checked_out
from ..storage.oci_registry import OciRegistry
from ..storage.registry_http import RegistryHTTP
from ..versioning import SemverTag, parse_semver_tag_from_ref

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes per-invocation policy so CLI flags don't leak into the core.
    """
    attest: bool = True           # Publish an attestation when the registry supports it
    verify_checkout: bool = True  # Require HEAD and the tag to match the run SHA
    verbose: bool = False         # Show detailed output


@dataclass(frozen=True)
class PlanResult:
    """What a publish would push, computed without contacting the registry."""
    version: str
    repo: str
    manifest_json: str
    manifest_digest: str
    archives: ArchiveSet
    attestations_enabled: bool


class Operations:
    """
    Application service facade for CLI operations.

    Registry and signer are injectable so tests can run a full publish
    against in-memory fakes. Exceptions from the front half of a run (bad tag,
    wrong checkout, unreadable workspace) bubble up for central mapping;
    registry failures come back inside the ``PublishResult``.
    """

    def __init__(self, config: OpsConfig, settings: Optional[Settings] = None,
                 registry: Optional[OciRegistry] = None,
                 signer: Optional[AttestationSigner] = None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            settings: Optional settings (if None, loaded from environment)
            registry: Registry push client (if None, created per publish)
            signer: Attestation signer (if None, the signing service client)
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings
        self.registry = registry
        self.signer = signer

    @property
    def attestations_enabled(self) -> bool:
        return self.cfg.attest and self.settings.attestations_enabled

    def resolve_version(self) -> SemverTag:
        """Parse the version from the run ref and verify the checkout."""
        tag = parse_semver_tag_from_ref(self.settings.ref)
        if self.cfg.verify_checkout:
            ensure_tag_and_ref_checked_out(self.settings.ref, self.settings.sha,
                                           self.settings.workspace_dir)
        return tag

    def build_archives(self, scratch_dir: Path) -> ArchiveSet:
        """Stage the workspace and archive it under ``scratch_dir``."""
        staged = stage_files(self.settings.workspace_dir, scratch_dir / "staging")
        return create_archives(staged, scratch_dir / "archives")

    def plan(self) -> PlanResult:
        """
        Build the package manifest locally and report what would be pushed.

        Nothing is uploaded and the signing service is not called.
        """
        tag = self.resolve_version()
        with tempfile.TemporaryDirectory(prefix="oci-publish-", dir=self._scratch_root()) as scratch:
            archives = self.build_archives(Path(scratch))
            manifest = build_package_manifest(
                archives.tar_file, archives.zip_file, self.settings.repository,
                self.settings.repository_id, self.settings.repository_owner_id,
                self.settings.sha, tag.raw, datetime.now(timezone.utc)
            )
            manifest_bytes = canonicalize(manifest)
            return PlanResult(
                version=tag.raw,
                repo=self.settings.registry_repo,
                manifest_json=manifest_bytes.decode("utf-8"),
                manifest_digest=sha256_digest(manifest_bytes),
                archives=archives,
                attestations_enabled=self.attestations_enabled,
            )

    def publish(self) -> PublishResult:
        """
        Run a full publish.

        Returns:
            Result of the publisher; check ``result.published``

        Raises:
            InvalidTagError: If the run ref is not a semver tag
            SourceMismatchError: If the checkout doesn't match the run SHA
        """
        tag = self.resolve_version()
        logger.info(f"Publishing {self.settings.repository} version {tag.raw}")

        owned = []
        deadline = time.monotonic() + self.settings.run_timeout_s
        registry = self.registry
        if registry is None:
            registry = RegistryHTTP(self.settings, deadline=deadline)
            owned.append(registry)

        signer = self.signer
        if signer is None and self.attestations_enabled:
            signer = SigningServiceClient(self.settings, deadline=deadline)
            owned.append(signer)

        try:
            with tempfile.TemporaryDirectory(prefix="oci-publish-", dir=self._scratch_root()) as scratch:
                archives = self.build_archives(Path(scratch))
                publisher = Publisher(registry, self.settings.registry_repo, signer=signer,
                                      attestations_enabled=self.attestations_enabled)
                return publisher.publish(
                    archives,
                    repository=self.settings.repository,
                    repository_id=self.settings.repository_id,
                    owner_id=self.settings.repository_owner_id,
                    commit_sha=self.settings.sha,
                    version=tag.raw,
                )
        finally:
            for client in owned:
                client.close()

    def _scratch_root(self) -> Optional[str]:
        return self.settings.temp_dir or None


__all__ = ["Operations", "OpsConfig", "PlanResult"]
