"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings, the
registry client and the attestation signer, avoiding global state and enabling
proper dependency injection.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from .attestation import SigningServiceClient
from .settings import Settings, create_settings_from_env
from .storage.registry_http import RegistryHTTP


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    The run deadline starts when the context is created, so every registry
    request of one command shares a single time budget.
    """
    settings: Settings
    started_at: float = 0.0
    _registry: Optional[RegistryHTTP] = None
    _signer: Optional[SigningServiceClient] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env()
        return cls(settings=settings, started_at=time.monotonic())

    @property
    def deadline(self) -> float:
        return self.started_at + self.settings.run_timeout_s

    @property
    def registry(self) -> RegistryHTTP:
        """Get or create the registry client (lazy initialization)."""
        if self._registry is None:
            self._registry = RegistryHTTP(self.settings, deadline=self.deadline)
        return self._registry

    @property
    def signer(self) -> Optional[SigningServiceClient]:
        """
        Get or create the signing service client.

        None when attestations are disabled for this registry.
        """
        if not self.settings.attestations_enabled:
            return None
        if self._signer is None:
            self._signer = SigningServiceClient(self.settings, deadline=self.deadline)
        return self._signer

    def close(self) -> None:
        if self._registry is not None:
            self._registry.close()
            self._registry = None
        if self._signer is not None:
            self._signer.close()
            self._signer = None
