"""CLI output styling utilities.

Visual language of the token report:
- Blue bold for row headers
- Green for values
- Expiry rows red under 20 minutes, yellow under 30, otherwise green
"""

from __future__ import annotations

__all__ = [
    "expiration_color",
    "style_row",
]

import click

# Expiry coloring thresholds in seconds
EXPIRY_RED_SECONDS = 20 * 60
EXPIRY_YELLOW_SECONDS = 30 * 60


def expiration_color(seconds_left: float) -> str:
    """Terminal color for an expiry that is `seconds_left` away."""
    if seconds_left < EXPIRY_RED_SECONDS:
        return "red"
    if seconds_left < EXPIRY_YELLOW_SECONDS:
        return "yellow"
    return "green"


def style_row(header: str, value: str, width: int, color: bool = True, value_color: str = "green") -> str:
    """Format one "Header:  value" row.

    Args:
        header: Row header, left-aligned and padded to `width`.
        value: Row value.
        width: Header column width.
        color: Emit ANSI styles.
        value_color: Color of the value.

    Example:
        >>> style_row("Access Key ID", "AK", 18, color=False)
        'Access Key ID     : AK'
    """
    head = f"{header.ljust(width)}: "
    if not color:
        return head + value
    return click.style(head, fg="blue", bold=True) + click.style(value, fg=value_color)
