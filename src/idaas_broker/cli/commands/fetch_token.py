"""fetch-token command: print a credential for tools and scripts.

Output depends on the credential:
- Cloud account credential: vendor STS token in --format, or the raw
  cloud account JSON with --format raw or for vendors without a mapping
- OIDC token: the bare token (no trailing newline), or the whole token as
  JSON with --oidc-format
"""

from __future__ import annotations

__all__ = ["fetch_token"]

from pathlib import Path
from typing import assert_never

import click

from idaas_broker.cli.common import (
    build_context,
    config_option,
    force_new_cloud_token_option,
    force_new_option,
    handle_broker_errors,
    profile_option,
)
from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.cloud.sts import convert_to_vendor_sts
from idaas_broker.credentials import Credential, OidcToken
from idaas_broker.orchestrator import CredentialOrchestrator, FetchOptions
from idaas_broker.utils.file_helpers import write_file_preserve_permissions

OUTPUT_FORMATS = ("aliyuncli", "ossutilv2", "raw")


def format_credential(
    credential: Credential, output_format: str, oidc_field: str | None, oidc_format: str | None = None
) -> str:
    """Serialize a credential the way fetch-token prints it.

    Raises:
        click.ClickException: If the selected OIDC field is absent.
    """
    match credential:
        case AlibabaStsToken():
            return credential.render(output_format)
        case CloudAccountCredential():
            access = credential.access_credential
            if output_format == "raw" or access is None or access.alibaba_cloud_sts_token is None:
                return credential.to_json()
            return convert_to_vendor_sts(credential).render(output_format)
        case OidcToken():
            if oidc_field is None and oidc_format is not None:
                return credential.to_json(oidc_format)
            field = oidc_field or credential.token_type
            token = credential.response.token_for(field)
            if not token:
                raise click.ClickException(f"Token response has no {field}")
            return token
        case _:
            assert_never(credential)


@click.command("fetch-token")
@config_option
@profile_option
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="aliyuncli",
    show_default=True,
    help="Cloud STS token output format",
)
@click.option("--oidc-field", type=click.Choice(["id_token", "access_token"]), help="OIDC token field to print")
@click.option(
    "--oidc-format",
    type=click.Choice(["type1", "type2"]),
    help="Print the whole OIDC token as JSON in this layout (ignored with --oidc-field)",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to file instead of stdout")
@force_new_option
@force_new_cloud_token_option
def fetch_token(
    config_path: str | None,
    profile: str | None,
    output_format: str,
    oidc_field: str | None,
    oidc_format: str | None,
    output: Path | None,
    force_new: bool,
    force_new_cloud_token: bool,
) -> None:
    """Fetch a cloud STS token or OIDC token.

    Examples:
        idaas-broker fetch-token -p aliyun
        idaas-broker fetch-token -p aliyun -f ossutilv2 -o ~/.ossutil-sts.json
        idaas-broker fetch-token -p my-oidc --oidc-field access_token
        idaas-broker fetch-token -p my-oidc --oidc-format type2
    """
    context = build_context(config_path)
    options = FetchOptions(force_new=force_new, force_new_cloud_credential=force_new_cloud_token)
    with handle_broker_errors(), CredentialOrchestrator(context) as orchestrator:
        credential = orchestrator.fetch(profile, options)
        text = format_credential(credential, output_format, oidc_field, oidc_format)

    bare_token = isinstance(credential, OidcToken) and (oidc_field is not None or oidc_format is None)
    newline = not bare_token
    if output is None:
        click.echo(text, nl=newline)
        return
    try:
        write_file_preserve_permissions(output, (text + "\n" if newline else text).encode())
    except OSError as e:
        raise click.ClickException(f"Failed to write {output}: {e}") from e
