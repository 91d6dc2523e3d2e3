"""Tests for checkout verification."""
from __future__ import annotations

import subprocess
from unittest.mock import patch

import pytest

from oci_publish.errors import SourceMismatchError
from oci_publish.source import ensure_tag_and_ref_checked_out

SHA = "a" * 40
OTHER = "b" * 40
REF = "refs/tags/v1.2.3"


def _rev_parse_results(ref_sha, head_sha):
    def fake_run(args, **kwargs):
        rev = args[-1]
        stdout = (ref_sha if rev.startswith(REF) else head_sha) + "\n"
        return subprocess.CompletedProcess(args, 0, stdout=stdout, stderr="")
    return fake_run


class TestEnsureCheckedOut:
    """Test HEAD and tag verification with a mocked git."""

    def test_matching_checkout(self, tmp_path):
        with patch("oci_publish.source.subprocess.run", side_effect=_rev_parse_results(SHA, SHA)) as run:
            ensure_tag_and_ref_checked_out(REF, SHA, tmp_path)

        revs = [call.args[0][-1] for call in run.call_args_list]
        assert revs == [f"{REF}^{{commit}}", "HEAD"]
        assert run.call_args_list[0].kwargs["cwd"] == tmp_path

    def test_tag_points_elsewhere(self, tmp_path):
        with patch("oci_publish.source.subprocess.run", side_effect=_rev_parse_results(OTHER, SHA)):
            with pytest.raises(SourceMismatchError, match=f"points to {OTHER}"):
                ensure_tag_and_ref_checked_out(REF, SHA, tmp_path)

    def test_head_elsewhere(self, tmp_path):
        with patch("oci_publish.source.subprocess.run", side_effect=_rev_parse_results(SHA, OTHER)):
            with pytest.raises(SourceMismatchError, match="does not match"):
                ensure_tag_and_ref_checked_out(REF, SHA, tmp_path)

    def test_unresolvable_ref(self, tmp_path):
        error = subprocess.CalledProcessError(1, ["git"])
        with patch("oci_publish.source.subprocess.run", side_effect=error):
            with pytest.raises(SourceMismatchError, match="Could not resolve"):
                ensure_tag_and_ref_checked_out(REF, SHA, tmp_path)

    def test_git_missing(self, tmp_path):
        with patch("oci_publish.source.subprocess.run", side_effect=FileNotFoundError("git")):
            with pytest.raises(SourceMismatchError, match="git executable"):
                ensure_tag_and_ref_checked_out(REF, SHA, tmp_path)

    def test_sha_required(self, tmp_path):
        with pytest.raises(SourceMismatchError):
            ensure_tag_and_ref_checked_out(REF, "", tmp_path)


@pytest.mark.slow
class TestEnsureCheckedOutWithGit:
    """Test against a real repository."""

    def _git(self, repo, *args):
        return subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True,
                              check=True).stdout.strip()

    def test_real_repository(self, tmp_path, git_available):
        repo = tmp_path / "repo"
        repo.mkdir()
        self._git(repo, "init", "-q")
        (repo / "action.yml").write_text("name: test\n")
        self._git(repo, "add", ".")
        self._git(repo, "-c", "user.name=t", "-c", "user.email=t@example.com",
                  "commit", "-q", "-m", "init")
        self._git(repo, "tag", "v1.2.3")
        sha = self._git(repo, "rev-parse", "HEAD")

        ensure_tag_and_ref_checked_out(REF, sha, repo)
        with pytest.raises(SourceMismatchError):
            ensure_tag_and_ref_checked_out(REF, OTHER, repo)
