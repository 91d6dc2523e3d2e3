"""
oci-publish CLI

Implements 2 CLI verbs with Operations facade integration:
- publish: Archive the tagged checkout and push it, with its attestation, to the registry
- plan: Show the package manifest a publish would push, without contacting the registry
"""
from __future__ import annotations

import logging

import typer

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, exit_code_for_result, run_and_exit
from .operations.printers import print_plan, print_publish_result, write_outputs

app = typer.Typer(name="oci-publish", help="Publish a tagged package version to an OCI registry")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def publish(
    no_attest: bool = typer.Option(False, "--no-attest", help="Skip the provenance attestation"),
    skip_checkout_check: bool = typer.Option(False, "--skip-checkout-check",
                                             help="Don't verify that HEAD matches the tagged commit"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Publish the tagged checkout as an OCI package."""
    _configure_logging(verbose)

    def _publish() -> int:
        config = OpsConfig(attest=not no_attest, verify_checkout=not skip_checkout_check,
                           verbose=verbose)

        context = CLIContext.from_env()
        try:
            signer = context.signer if config.attest else None
            ops = Operations(
                config=config,
                settings=context.settings,
                registry=context.registry,
                signer=signer
            )
            result = ops.publish()
        finally:
            context.close()

        write_outputs(result.outputs())
        print_publish_result(result, verbose=verbose)
        return exit_code_for_result(result)

    code = run_and_exit(_publish)
    if code:
        raise typer.Exit(code=code)


@app.command()
def plan(
    skip_checkout_check: bool = typer.Option(False, "--skip-checkout-check",
                                             help="Don't verify that HEAD matches the tagged commit"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Show what publish would push without uploading anything."""
    _configure_logging(verbose)

    def _plan() -> None:
        config = OpsConfig(verify_checkout=not skip_checkout_check, verbose=verbose)
        context = CLIContext.from_env()
        ops = Operations(config=config, settings=context.settings)
        print_plan(ops.plan(), verbose=verbose)

    run_and_exit(_plan)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
