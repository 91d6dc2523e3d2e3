"""Root pytest configuration for oci-publish tests."""
import subprocess
from pathlib import Path

import pytest

from oci_publish.archives import create_archives, stage_files
from oci_publish.settings import Settings
from .fakes.fake_signer import FakeSigner
from .helpers.registry_server import REGISTRY_HOST, RegistryServer
from .storage.fakes.fake_oci_registry import FakeOciRegistry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically set up test environment variables."""
    monkeypatch.setenv("PUBLISH_REGISTRY_URL", REGISTRY_HOST)
    monkeypatch.setenv("GITHUB_REPOSITORY", "octo-org/hello-world")
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.2.3")
    monkeypatch.setenv("GITHUB_SHA", "a" * 40)
    monkeypatch.setenv("GITHUB_REPOSITORY_ID", "123")
    monkeypatch.setenv("GITHUB_REPOSITORY_OWNER_ID", "456")
    monkeypatch.setenv("PUBLISH_TOKEN", "ghs_test")
    monkeypatch.setenv("PUBLISH_RETRY_BACKOFF", "0")
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GITHUB_SERVER_URL", raising=False)
    monkeypatch.delenv("PUBLISH_ENTERPRISE", raising=False)


# Standardized test fixtures
@pytest.fixture
def settings(tmp_path):
    """Standard test settings (no retry backoff)."""
    return Settings(
        registry_url=REGISTRY_HOST,
        repository="octo-org/hello-world",
        ref="refs/tags/v1.2.3",
        sha="a" * 40,
        repository_id="123",
        repository_owner_id="456",
        token="ghs_test",
        workspace_dir=str(tmp_path / "workspace"),
        temp_dir=str(tmp_path),
        signing_url="https://signing.example.test/attest",
        retry_backoff_s=0.0,
    )


@pytest.fixture
def registry():
    """Standard fake registry for testing."""
    return FakeOciRegistry()


@pytest.fixture
def signer():
    """Standard fake signer for testing."""
    return FakeSigner()


@pytest.fixture
def registry_server():
    """In-memory registry reachable through an httpx MockTransport."""
    return RegistryServer()


@pytest.fixture
def workspace(settings):
    """A small package checkout."""
    path = Path(settings.workspace_dir)
    path.mkdir(parents=True)
    (path / "action.yml").write_text("name: hello\nruns:\n  using: node20\n  main: index.js\n")
    (path / "index.js").write_text("console.log('hello');\n")
    (path / "lib").mkdir()
    (path / "lib" / "util.js").write_text("module.exports = {};\n")
    (path / ".git").mkdir()
    (path / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return path


@pytest.fixture
def archives(workspace, tmp_path):
    """Archives of the standard workspace."""
    staged = stage_files(workspace, tmp_path / "staging")
    return create_archives(staged, tmp_path / "archives")


@pytest.fixture
def git_available():
    try:
        subprocess.run(["git", "--version"], capture_output=True, check=True)
    except (FileNotFoundError, subprocess.CalledProcessError):
        pytest.skip("git not available")
