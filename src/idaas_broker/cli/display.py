"""Human-readable rendering of credentials for `show-token`."""

from __future__ import annotations

__all__ = ["render_credential"]

import time
from datetime import datetime
from typing import assert_never

from idaas_broker.cli.styling import expiration_color, style_row
from idaas_broker.cloud.models import AlibabaStsToken, CloudAccountCredential
from idaas_broker.cloud.sts import convert_to_vendor_sts
from idaas_broker.credentials import Credential, OidcToken

ROW_WIDTH = 18
WIDE_ROW_WIDTH = 31


def _expiration_row(expires_at: float, now: float, color: bool) -> str:
    local = datetime.fromtimestamp(expires_at).astimezone().isoformat(sep=" ")
    seconds_left = expires_at - now
    if seconds_left <= 0:
        return style_row("Expiration", f"{local}   [Expired]", ROW_WIDTH, color, "red")
    status = f"Expires in {int(seconds_left) // 60} minute(s)"
    return style_row("Expiration", f"{local}   [{status}]", ROW_WIDTH, color, expiration_color(seconds_left))


def _sts_rows(token: AlibabaStsToken, now: float, color: bool) -> list[str]:
    rows = [
        style_row("Access Key ID", token.access_key_id, ROW_WIDTH, color),
        style_row("Access Key Secret", token.access_key_secret, ROW_WIDTH, color),
        style_row("Security Token", token.security_token, ROW_WIDTH, color),
    ]
    try:
        expires_at = datetime.fromisoformat(token.expiration.replace("Z", "+00:00")).timestamp()
    except ValueError:
        rows.append(style_row("Expiration", token.expiration, ROW_WIDTH, color))
    else:
        rows.append(_expiration_row(expires_at, now, color))
    return rows


def _oidc_rows(token: OidcToken, oidc_field: str | None, now: float, color: bool) -> list[str]:
    response = token.response
    show_id = bool(response.id_token) and oidc_field in (None, "id_token")
    show_access = bool(response.access_token) and oidc_field in (None, "access_token")

    rows: list[str] = []
    if show_id:
        assert response.id_token is not None
        rows.append(style_row("ID Token", response.id_token, ROW_WIDTH, color))
        id_expiry = response.id_token_expires_at()
        if id_expiry is not None:
            rows.append(_expiration_row(id_expiry, now, color))
    if show_id and show_access:
        rows.append("")
    if show_access:
        rows.append(style_row("Access Token Type", response.token_type, ROW_WIDTH, color))
        rows.append(style_row("Access Token", response.access_token, ROW_WIDTH, color))
        if response.expires_in is not None:
            rows.append(_expiration_row(token.captured_at + response.expires_in, now, color))
    if response.refresh_token:
        rows.append(style_row("Refresh Token", response.refresh_token, ROW_WIDTH, color))
    return rows


def _cloud_account_rows(credential: CloudAccountCredential, now: float, color: bool) -> list[str]:
    rows = [
        style_row("Cloud Account ID", credential.account_id, WIDE_ROW_WIDTH, color),
        style_row("Cloud Account Role ID", credential.role_id, WIDE_ROW_WIDTH, color),
        style_row("Cloud Account Role Name", credential.role_name, WIDE_ROW_WIDTH, color),
        style_row("Cloud Account Role External ID", credential.role_external_id, WIDE_ROW_WIDTH, color),
        style_row("Cloud Account Vendor Type", credential.vendor_type, WIDE_ROW_WIDTH, color),
    ]
    if credential.access_credential is None:
        return rows
    rows.append(
        style_row("Cloud Account Token Expires At", str(credential.access_credential.expires_at), WIDE_ROW_WIDTH, color)
    )
    rows.append("")
    if credential.access_credential.alibaba_cloud_sts_token is not None:
        rows.extend(_sts_rows(convert_to_vendor_sts(credential), now, color))
    return rows


def render_credential(
    credential: Credential,
    oidc_field: str | None = None,
    color: bool = True,
    now: float | None = None,
) -> list[str]:
    """Render a credential as report lines.

    Args:
        credential: Credential to show.
        oidc_field: Restrict an OIDC token report to id_token or access_token.
        color: Emit ANSI styles.
        now: Reference time for expiry rows (defaults to the current time).

    Returns:
        Lines to print, without trailing newlines.
    """
    now = time.time() if now is None else now
    match credential:
        case AlibabaStsToken():
            return _sts_rows(credential, now, color)
        case OidcToken():
            return _oidc_rows(credential, oidc_field, now, color)
        case CloudAccountCredential():
            return _cloud_account_rows(credential, now, color)
        case _:
            assert_never(credential)
