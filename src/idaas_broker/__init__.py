"""idaas-broker: credential broker for OIDC identity tokens and cloud STS credentials."""

__all__ = ["__version__"]

__version__ = "0.2.0"
