"""
Human-readable output formatting.

Centralizes all CLI output so the publisher itself never prints; it returns
a result object and these functions render it.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

import typer

from ..models import PublishResult
from .facade import PlanResult


def print_publish_result(result: PublishResult, verbose: bool = False) -> None:
    """
    Print the verified digests of a run, or the failure that ended it.

    Digests are printed for every stage that completed verification, even
    when a later stage failed.
    """
    for name, digest in result.outputs().items():
        typer.echo(f"{name}: {digest}")

    if result.published:
        typer.echo("Published")
        return

    failure = result.failure
    if failure is None:
        typer.echo("Failed", err=True)
        return

    typer.echo(f"Failed at {failure.stage}: {failure.message}", err=True)
    if failure.expected and failure.actual:
        typer.echo(f"  expected digest: {failure.expected}", err=True)
        typer.echo(f"  returned digest: {failure.actual}", err=True)
    elif failure.digest:
        typer.echo(f"  digest: {failure.digest}", err=True)
    if verbose:
        if failure.tag:
            typer.echo(f"  tag: {failure.tag}", err=True)
        if failure.status_code:
            typer.echo(f"  HTTP status: {failure.status_code}", err=True)
        typer.echo(f"  error: {failure.error_type}", err=True)


def print_plan(plan: PlanResult, verbose: bool = False) -> None:
    """Print what a publish would push."""
    typer.echo(f"Repository: {plan.repo}")
    typer.echo(f"Version: {plan.version}")
    typer.echo(f"Package manifest digest: {plan.manifest_digest}")
    typer.echo(f"  tar.gz: {plan.archives.tar_file.sha256} ({_format_bytes(plan.archives.tar_file.size)})")
    typer.echo(f"  zip:    {plan.archives.zip_file.sha256} ({_format_bytes(plan.archives.zip_file.size)})")
    typer.echo(f"Attestation: {'enabled' if plan.attestations_enabled else 'disabled'}")
    if verbose:
        typer.echo(plan.manifest_json)


def write_outputs(outputs: Mapping[str, str], output_file: Optional[str] = None) -> None:
    """
    Append ``name=value`` lines to the workflow output file, if one is set.

    Args:
        outputs: Named output values
        output_file: Output file path (defaults to $GITHUB_OUTPUT)
    """
    path = output_file or os.getenv("GITHUB_OUTPUT")
    if not path or not outputs:
        return
    with open(Path(path), "a", encoding="utf-8") as f:
        for name, value in outputs.items():
            f.write(f"{name}={value}\n")


def _format_bytes(size_bytes: int) -> str:
    """Format byte count as human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
