"""show-token command: human-readable credential report."""

from __future__ import annotations

__all__ = ["show_token"]

import click

from idaas_broker.cli.common import (
    build_context,
    config_option,
    force_new_cloud_token_option,
    force_new_option,
    handle_broker_errors,
    profile_option,
)
from idaas_broker.cli.display import render_credential
from idaas_broker.orchestrator import CredentialOrchestrator, FetchOptions


@click.command("show-token")
@config_option
@profile_option
@click.option("--oidc-field", type=click.Choice(["id_token", "access_token"]), help="Only show this OIDC token")
@click.option("--no-color", is_flag=True, help="Output without color")
@force_new_option
@force_new_cloud_token_option
def show_token(
    config_path: str | None,
    profile: str | None,
    oidc_field: str | None,
    no_color: bool,
    force_new: bool,
    force_new_cloud_token: bool,
) -> None:
    """Show the profile's credential with its expiration."""
    context = build_context(config_path)
    options = FetchOptions(force_new=force_new, force_new_cloud_credential=force_new_cloud_token)
    with handle_broker_errors(), CredentialOrchestrator(context) as orchestrator:
        credential = orchestrator.fetch(profile, options)

    for line in render_credential(credential, oidc_field=oidc_field, color=not no_color):
        click.echo(line)
