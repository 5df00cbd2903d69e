"""show-signer-public-key command.

Prints the PEM public key of the profile's client assertion signer, for
registering the client with the issuer.
"""

from __future__ import annotations

__all__ = ["show_signer_public_key"]

import click
from cryptography.hazmat.primitives import serialization

from idaas_broker.cli.common import config_option, handle_broker_errors, profile_option
from idaas_broker.config import BrokerConfig, resolve_config_path
from idaas_broker.signer.factory import create_signer


@click.command("show-signer-public-key")
@config_option
@profile_option
def show_signer_public_key(config_path: str | None, profile: str | None) -> None:
    """Show the client assertion signer's public key."""
    with handle_broker_errors():
        name, profile_config = BrokerConfig.load(resolve_config_path(config_path)).resolve_profile(profile)
        if profile_config.cloud_account is not None:
            provider = profile_config.cloud_account.access_token_provider
        else:
            assert profile_config.oidc_token is not None
            provider = profile_config.oidc_token
        descriptor = provider.client_assertion_signer
        if descriptor is None:
            raise click.ClickException(f"Profile {name} has no client assertion signer")
        public_key = create_signer(descriptor).public_key()

    pem = public_key.public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
    click.echo(pem.decode(), nl=False)
