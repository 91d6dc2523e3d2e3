"""Tests for result printing and workflow outputs."""
from __future__ import annotations

from oci_publish.models import PublishFailure, PublishResult, PublishStatus
from oci_publish.operations import PlanResult
from oci_publish.operations.printers import print_plan, print_publish_result, write_outputs

PACKAGE = "sha256:" + "a" * 64
ATTESTATION = "sha256:" + "b" * 64


class TestWriteOutputs:
    """Test workflow output files."""

    def test_appends_lines(self, tmp_path):
        output = tmp_path / "out"
        output.write_text("existing=1\n")
        write_outputs({"package-manifest-sha": PACKAGE}, str(output))
        assert output.read_text() == f"existing=1\npackage-manifest-sha={PACKAGE}\n"

    def test_env_variable_used(self, tmp_path, monkeypatch):
        output = tmp_path / "out"
        monkeypatch.setenv("GITHUB_OUTPUT", str(output))
        write_outputs({"package-manifest-sha": PACKAGE})
        assert output.read_text() == f"package-manifest-sha={PACKAGE}\n"

    def test_no_destination_is_noop(self, tmp_path):
        write_outputs({"package-manifest-sha": PACKAGE})
        assert list(tmp_path.iterdir()) == []


class TestPrintPublishResult:
    """Test human-readable result output."""

    def test_failed_run_shows_verified_digests_and_failure(self, capsys):
        failure = PublishFailure(stage="upload-package", message="HTTP 503", error_type="OciTransientError",
                                 digest=PACKAGE, tag="1.2.3", status_code=503)
        result = PublishResult(status=PublishStatus.FAILED, attestation_manifest_digest=ATTESTATION,
                               failure=failure)
        print_publish_result(result, verbose=True)

        captured = capsys.readouterr()
        assert f"attestation-manifest-sha: {ATTESTATION}" in captured.out
        assert "Failed at upload-package: HTTP 503" in captured.err
        assert f"digest: {PACKAGE}" in captured.err
        assert "HTTP status: 503" in captured.err
        assert "tag: 1.2.3" in captured.err


class TestPrintPlan:
    """Test dry-run output."""

    def test_plan_lines(self, archives, capsys):
        plan = PlanResult(version="1.2.3", repo="octo-org/hello-world", manifest_json="{}",
                          manifest_digest=PACKAGE, archives=archives, attestations_enabled=False)
        print_plan(plan, verbose=True)

        out = capsys.readouterr().out
        assert "Repository: octo-org/hello-world" in out
        assert f"Package manifest digest: {PACKAGE}" in out
        assert f"tar.gz: {archives.tar_file.sha256}" in out
        assert "Attestation: disabled" in out
        assert out.rstrip().endswith("{}")
