"""Main CLI entry point for idaas-broker.

Commands:
    fetch-token             - Print a cloud STS token or OIDC token
    show-token              - Human-readable credential report
    show-signer-public-key  - PEM public key of the assertion signer
    serve                   - Local credentials endpoint for SDKs

Subcommand help:
    idaas-broker COMMAND -h
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from idaas_broker import __version__

from .commands.fetch_token import fetch_token
from .commands.serve import serve
from .commands.show_signer_public_key import show_signer_public_key
from .commands.show_token import show_token


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """idaas-broker: credentials from your identity provider."""
    if version:
        click.echo(f"idaas-broker {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(fetch_token)
cli.add_command(show_token)
cli.add_command(show_signer_public_key)
cli.add_command(serve)


def main() -> None:
    """CLI entry point."""
    cli()
