"""Options and helpers shared by CLI commands."""

from __future__ import annotations

__all__ = [
    "BrokerClickException",
    "build_context",
    "config_option",
    "force_new_cloud_token_option",
    "force_new_option",
    "handle_broker_errors",
    "profile_option",
]

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

import click

from idaas_broker.context import BrokerContext
from idaas_broker.exceptions import BrokerError

F = TypeVar("F", bound=Callable[..., Any])


class BrokerClickException(click.ClickException):
    """ClickException exiting with the BrokerError's exit code."""

    def __init__(self, error: BrokerError) -> None:
        super().__init__(str(error))
        self.exit_code = error.exit_code


@contextmanager
def handle_broker_errors() -> Iterator[None]:
    """Turn BrokerError into a ClickException with the matching exit code."""
    try:
        yield
    except BrokerError as e:
        raise BrokerClickException(e) from e


def build_context(config_path: str | None) -> BrokerContext:
    with handle_broker_errors():
        return BrokerContext.create(config_path=config_path)


def config_option(f: F) -> F:
    return click.option("--config", "-c", "config_path", help="Configuration file path")(f)


def profile_option(f: F) -> F:
    return click.option("--profile", "-p", help="Profile name (default profile if omitted)")(f)


def force_new_option(f: F) -> F:
    return click.option("--force-new", "-N", is_flag=True, help="Ignore every cache layer")(f)


def force_new_cloud_token_option(f: F) -> F:
    return click.option(
        "--force-new-cloud-token",
        is_flag=True,
        help="Fetch a new cloud token (OIDC token cache still used)",
    )(f)
