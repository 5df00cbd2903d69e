"""Console presentation of a device authorization challenge.

Output goes to stderr so stdout stays clean for the fetched credential.
"""

from __future__ import annotations

__all__ = ["ConsoleChallengePresenter", "render_qr_code"]

import io
import webbrowser

import click
import qrcode

from idaas_broker.oidc.models import DeviceCodeChallenge


def render_qr_code(data: str, small: bool = False) -> str:
    """Render `data` as a terminal QR code.

    Args:
        data: Text to encode.
        small: Use half-block characters (two modules per character row).

    Returns:
        Multi-line string.
    """
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_L, border=2)
    qr.add_data(data)
    qr.make(fit=True)

    if small:
        out = io.StringIO()
        qr.print_ascii(out=out, invert=True)
        return out.getvalue()

    lines = []
    for row in qr.get_matrix():
        lines.append("".join("  " if dark else "██" for dark in row))
    return "\n".join(lines) + "\n"


class ConsoleChallengePresenter:
    """Shows the verification URL and user code, optionally as a QR code or in a browser."""

    def __init__(self, show_qr_code: bool = False, small_qr_code: bool = False, auto_open_url: bool = False) -> None:
        self._show_qr_code = show_qr_code
        self._small_qr_code = small_qr_code
        self._auto_open_url = auto_open_url

    def __call__(self, challenge: DeviceCodeChallenge) -> None:
        url = challenge.verification_uri_complete

        if self._show_qr_code:
            click.echo("Please scan QR code:", err=True)
            click.echo(render_qr_code(url, small=self._small_qr_code), err=True, nl=False)

        if self._auto_open_url:
            try:
                webbrowser.open(url)
            except (OSError, webbrowser.Error) as e:
                click.echo(f"Could not open browser automatically: {e}", err=True)

        code = click.style(challenge.user_code, fg="green", bold=True)
        click.echo(
            f"Open URL: {click.style(challenge.verification_uri, fg='blue', underline=True)} , "
            f"then input user code: {code}",
            err=True,
        )
        click.echo(
            f"or, direct open URL: {click.style(url, fg='blue', underline=True)} <-- [RECOMMENDED]",
            err=True,
        )
        click.echo(err=True)
