"""serve command: local credentials endpoint for cloud SDKs.

SDKs configured with a credentials URI (for example
http://127.0.0.1:1127/cloud_token?profile=aliyun) call it for STS tokens.
"""

from __future__ import annotations

__all__ = ["serve"]

from pathlib import Path

import click
import uvicorn

from idaas_broker.api.security import generate_token
from idaas_broker.api.server import create_app
from idaas_broker.cli.common import build_context, config_option
from idaas_broker.constants import DEFAULT_LOG_DIR, DEFAULT_SERVE_HOST, DEFAULT_SERVE_PORT
from idaas_broker.orchestrator import CredentialOrchestrator
from idaas_broker.telemetry.system_logger import configure_system_logger_file


@click.command()
@config_option
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65535),
    default=DEFAULT_SERVE_PORT,
    show_default=True,
    help="Listen port",
)
@click.option("--unsafe-listen-host", help=f"Listen host instead of {DEFAULT_SERVE_HOST} (e.g. 0.0.0.0)")
@click.option("--ssrf-token", help="Token required in the X-Aliyun-Parameters-Secrets-Token header")
@click.option("--unsafe-disable-ssrf", is_flag=True, help="Serve without an SSRF token")
def serve(
    config_path: str | None,
    port: int,
    unsafe_listen_host: str | None,
    ssrf_token: str | None,
    unsafe_disable_ssrf: bool,
) -> None:
    """Serve cloud STS tokens over local HTTP."""
    if not ssrf_token and not unsafe_disable_ssrf:
        raise click.UsageError(
            "SSRF token is required, unless --unsafe-disable-ssrf is set "
            f"(for example: --ssrf-token {generate_token()})"
        )

    context = build_context(config_path)
    configure_system_logger_file(Path(DEFAULT_LOG_DIR) / "system.jsonl")
    host = unsafe_listen_host or DEFAULT_SERVE_HOST

    with CredentialOrchestrator(context) as orchestrator:
        app = create_app(orchestrator, context.startup_ms, ssrf_token or None)
        click.echo(f"Listen at {host}:{port}...", err=True)
        uvicorn.run(app, host=host, port=port, log_level="warning")
