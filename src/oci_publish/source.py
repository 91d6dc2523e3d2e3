"""
Checkout verification.

The archives are built from the workspace, so the workspace must be checked
out at the commit the tag points to.
"""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .errors import SourceMismatchError

logger = logging.getLogger(__name__)


def _rev_parse(workspace: Path, rev: str) -> str:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--verify", "--quiet", rev],
            cwd=workspace, capture_output=True, text=True, check=True,
        )
    except FileNotFoundError as e:
        raise SourceMismatchError("git executable not found") from e
    except subprocess.CalledProcessError as e:
        raise SourceMismatchError(f"Could not resolve {rev} in {workspace}") from e
    return result.stdout.strip()


def ensure_tag_and_ref_checked_out(ref: str, sha: str, workspace: str | Path) -> None:
    """
    Verify that both ``HEAD`` and ``ref`` resolve to ``sha``.

    Args:
        ref: Tag ref being published (e.g. "refs/tags/v1.2.3")
        sha: Commit SHA the run was triggered for
        workspace: Checkout directory

    Raises:
        SourceMismatchError: If either resolves elsewhere or cannot be resolved
    """
    workspace = Path(workspace)
    if not sha:
        raise SourceMismatchError("No commit SHA configured for this run")

    ref_sha = _rev_parse(workspace, f"{ref}^{{commit}}")
    if ref_sha != sha:
        raise SourceMismatchError(f"The ref {ref} points to {ref_sha}, expected {sha}")

    head_sha = _rev_parse(workspace, "HEAD")
    if head_sha != sha:
        raise SourceMismatchError(f"The checked out commit {head_sha} does not match {sha} for {ref}")

    logger.debug(f"Verified {ref} and HEAD at {sha}")


__all__ = ["ensure_tag_and_ref_checked_out"]
