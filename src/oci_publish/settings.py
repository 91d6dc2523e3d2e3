"""
Settings and configuration for oci-publish.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at run start.
"""
from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

__all__ = ["Settings", "create_settings_from_env", "is_enterprise_server"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for a publish run.

    Registry Settings:
        registry_url: OCI registry URL (required)
        registry_insecure: Allow HTTP connections for local/dev use
        registry_user: Username presented with the token during token exchange
        token: Credential exchanged for a registry bearer token

    Source Settings:
        repository: Source repository as "owner/name" (required)
        ref: Git ref being published, e.g. "refs/tags/v1.2.3"
        sha: Commit SHA the ref should point at
        repository_id: Numeric repository ID
        repository_owner_id: Numeric repository owner ID
        workspace_dir: Checkout directory
        temp_dir: Scratch directory for staging and archives

    Attestation Settings:
        is_enterprise: Registry variant without referrer support (skips attestations)
        signing_url: Attestation signing service endpoint

    Network Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Number of retries for transient failures (0=no retry)
        retry_backoff_s: Exponential backoff multiplier in seconds
        run_timeout_s: Overall deadline for the registry phase of a run
        upload_concurrency: Parallel blob uploads within one manifest group
    """
    # Registry settings
    registry_url: str
    repository: str
    ref: str = ""
    sha: str = ""
    repository_id: str = ""
    repository_owner_id: str = ""
    token: Optional[str] = None
    registry_user: str = "token"
    registry_insecure: bool = False

    # Workspace
    workspace_dir: str = "."
    temp_dir: str = ""

    # Attestations
    is_enterprise: bool = False
    signing_url: Optional[str] = None

    # Network behaviour
    http_timeout_s: float = 30.0
    http_retry: int = 2
    retry_backoff_s: float = 1.0
    run_timeout_s: float = 600.0
    upload_concurrency: int = 4

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.registry_url:
            raise ValueError("registry_url is required")

        # Basic URL validation - should be host[:port] or https://host[:port]
        url_pattern = r"^(?:https?://)?[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        if not re.match(url_pattern, self.registry_url):
            raise ValueError(f"Invalid registry_url format: {self.registry_url}")

        if not self.repository:
            raise ValueError("repository is required")

        repo_pattern = r"^[A-Za-z0-9][A-Za-z0-9._-]*/[A-Za-z0-9][A-Za-z0-9._-]*$"
        if not re.match(repo_pattern, self.repository):
            raise ValueError(f"Invalid repository format: {self.repository}. Expected 'owner/name'.")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.run_timeout_s <= 0:
            raise ValueError(f"run_timeout_s must be positive, got {self.run_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.retry_backoff_s < 0:
            raise ValueError(f"retry_backoff_s must be non-negative, got {self.retry_backoff_s}")

        if self.upload_concurrency < 1:
            raise ValueError(f"upload_concurrency must be at least 1, got {self.upload_concurrency}")

    @property
    def attestations_enabled(self) -> bool:
        """Attestations need referrer support, which enterprise registries lack."""
        return not self.is_enterprise

    @property
    def registry_repo(self) -> str:
        """OCI repository path for the package (OCI names are lowercase)."""
        return self.repository.lower()

    @property
    def max_attempts(self) -> int:
        return self.http_retry + 1


def is_enterprise_server(server_url: str) -> bool:
    """
    Whether a server URL points at an enterprise (self-hosted) installation.

    Examples:
        >>> is_enterprise_server("https://github.com")
        False
        >>> is_enterprise_server("https://acme.ghe.com")
        False
        >>> is_enterprise_server("https://github.acme.internal")
        True
    """
    host = (urlparse(server_url).hostname or "").lower()
    return not (host == "github.com" or host.endswith(".ghe.com"))


# Settings loading functions (no caching)


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Registry:
        - PUBLISH_REGISTRY_URL (required)
        - PUBLISH_TOKEN or GITHUB_TOKEN (optional)
        - PUBLISH_REGISTRY_USERNAME (default: token)
        - PUBLISH_REGISTRY_INSECURE (default: false)

        Source:
        - GITHUB_REPOSITORY (required)
        - GITHUB_REF, GITHUB_SHA
        - GITHUB_REPOSITORY_ID, GITHUB_REPOSITORY_OWNER_ID
        - GITHUB_WORKSPACE (default: current directory)
        - RUNNER_TEMP (default: system temp directory)

        Attestations:
        - GITHUB_SERVER_URL (default: https://github.com)
        - PUBLISH_ENTERPRISE (overrides the server URL check)
        - PUBLISH_SIGNING_URL (optional)

        Network:
        - PUBLISH_HTTP_TIMEOUT (default: 30.0)
        - PUBLISH_HTTP_RETRY (default: 2)
        - PUBLISH_RETRY_BACKOFF (default: 1.0)
        - PUBLISH_RUN_TIMEOUT (default: 600.0)
        - PUBLISH_UPLOAD_CONCURRENCY (default: 4)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    return _load_settings_impl()


def _load_settings_impl() -> Settings:
    """Internal implementation of settings loading."""
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    registry_url = os.getenv("PUBLISH_REGISTRY_URL")
    repository = os.getenv("GITHUB_REPOSITORY")

    if not registry_url:
        raise ValueError("PUBLISH_REGISTRY_URL environment variable is required")
    if not repository:
        raise ValueError("GITHUB_REPOSITORY environment variable is required")

    enterprise_override = os.getenv("PUBLISH_ENTERPRISE")
    if enterprise_override:
        is_enterprise = str_to_bool(enterprise_override)
    else:
        is_enterprise = is_enterprise_server(os.getenv("GITHUB_SERVER_URL", "https://github.com"))

    return Settings(
        registry_url=registry_url,
        repository=repository,
        ref=os.getenv("GITHUB_REF", ""),
        sha=os.getenv("GITHUB_SHA", ""),
        repository_id=os.getenv("GITHUB_REPOSITORY_ID", ""),
        repository_owner_id=os.getenv("GITHUB_REPOSITORY_OWNER_ID", ""),
        token=os.getenv("PUBLISH_TOKEN") or os.getenv("GITHUB_TOKEN"),
        registry_user=os.getenv("PUBLISH_REGISTRY_USERNAME", "token"),
        registry_insecure=str_to_bool(os.getenv("PUBLISH_REGISTRY_INSECURE", "false")),
        workspace_dir=os.getenv("GITHUB_WORKSPACE", os.getcwd()),
        temp_dir=os.getenv("RUNNER_TEMP", tempfile.gettempdir()),
        is_enterprise=is_enterprise,
        signing_url=os.getenv("PUBLISH_SIGNING_URL"),
        http_timeout_s=get_float("PUBLISH_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("PUBLISH_HTTP_RETRY", 2),
        retry_backoff_s=get_float("PUBLISH_RETRY_BACKOFF", 1.0),
        run_timeout_s=get_float("PUBLISH_RUN_TIMEOUT", 600.0),
        upload_concurrency=get_int("PUBLISH_UPLOAD_CONCURRENCY", 4),
    )
