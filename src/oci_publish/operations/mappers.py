"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from ..models import PublishResult

T = TypeVar('T')

EXIT_CODES = {
    "InvalidTagError": 2,
    "SourceMismatchError": 2,
    "ValidationError": 2,
    "ValueError": 2,
    "OciAuthError": 4,
    "OciDigestMismatch": 5,
    "AttestationError": 6,
    "PublishTimeout": 7,
}

# Registry, network and unknown errors
FALLBACK_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 2: Invalid input (bad tag, wrong checkout, invalid settings)
    - 3: Registry/network error or unknown error
    - 4: Registry authentication/authorization failure
    - 5: Registry returned a digest different from the local one
    - 6: Attestation signing failed
    - 7: Run deadline exceeded
    """
    return EXIT_CODES.get(type(exc).__name__, FALLBACK_EXIT_CODE)


def exit_code_for_result(result: PublishResult) -> int:
    """Exit code for a publish result (0 when published)."""
    if result.published:
        return 0
    error_type = result.failure.error_type if result.failure else ""
    return EXIT_CODES.get(error_type, FALLBACK_EXIT_CODE)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, so CLI commands don't need individual
    try/except blocks.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
