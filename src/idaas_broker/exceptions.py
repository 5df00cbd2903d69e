"""Custom exceptions for idaas-broker.

All broker failures derive from BrokerError. Each subclass carries an
exit code (used by the CLI) and a failure type (used in structured logs
and HTTP error bodies).

Fatal, never retried:
    - ConfigurationError: Missing or invalid profile configuration
    - NotCloudProfileError: Cloud STS token asked of an OIDC token profile
    - SignerError: Key backend unavailable, PIN rejected, unsupported key
    - ProtocolError: Issuer returned a malformed response
    - ConversionError: No vendor STS mapping for a cloud credential

Transient (retried only within the bounded device-flow/refresh budgets):
    - UpstreamError: Network or issuer fault
    - CredentialUnavailable: A fetch produced no credential

Distinguished:
    - AccessDeniedError: User denied the device authorization request.
      Callers must stop and must not fall back to another method.

Storage:
    - StorageError: Cache I/O or decryption failure

Usage:
    from idaas_broker.exceptions import ConfigurationError, UpstreamError
"""

from __future__ import annotations

__all__ = [
    "AccessDeniedError",
    "BrokerError",
    "ConfigurationError",
    "ConversionError",
    "CredentialUnavailable",
    "NotCloudProfileError",
    "ProtocolError",
    "SignerError",
    "StorageError",
    "UpstreamError",
]


class BrokerError(Exception):
    """Base exception for all broker failures.

    Attributes:
        exit_code: Process exit code used by the CLI.
        failure_type: Category string for logging and HTTP error bodies.
    """

    exit_code: int = 1
    failure_type: str = "broker_failure"


class ConfigurationError(BrokerError):
    """Configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist or contains invalid JSON
    - Config file fails Pydantic validation
    - Requested profile does not exist or cannot be chosen unambiguously
    - A required endpoint (cloud account endpoint, device authorization
      endpoint) is missing

    The user must fix the input. Never retried.
    """

    exit_code = 2
    failure_type = "configuration_failure"


class NotCloudProfileError(ConfigurationError):
    """A cloud STS token was requested for a profile that yields an OIDC token."""

    failure_type = "not_cloud_profile"


class SignerError(BrokerError):
    """Signing backend failed.

    Raised when:
    - Private key file cannot be read or decrypted
    - Smartcard/HSM is absent, locked, or rejects the PIN
    - The key type does not support the requested JWT algorithm

    Surfaced verbatim. Never retried.
    """

    exit_code = 3
    failure_type = "signer_failure"


class UpstreamError(BrokerError):
    """Network or issuer fault.

    Retried only inside the bounded budgets of the device flow
    (challenge request, polling) and the refresh fast path.
    """

    exit_code = 4
    failure_type = "upstream_failure"


class CredentialUnavailable(UpstreamError):
    """A fetch completed without producing a usable credential."""

    failure_type = "credential_unavailable"


class ProtocolError(BrokerError):
    """Upstream response is malformed.

    Indicates an issuer or API version mismatch. Never retried.
    """

    exit_code = 5
    failure_type = "protocol_failure"


class StorageError(BrokerError):
    """Cache I/O or decryption failure.

    Attributes:
        recoverable: True when the record could not be decrypted (rotated
            or wrong key). Read-through callers treat a recoverable error
            as a cache miss with a warning; anything else is fatal.
    """

    exit_code = 6
    failure_type = "storage_failure"

    def __init__(self, message: str, *, recoverable: bool = False) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class ConversionError(BrokerError):
    """Cloud account credential has no supported vendor STS mapping."""

    exit_code = 7
    failure_type = "conversion_failure"


class AccessDeniedError(BrokerError):
    """User denied the device authorization request.

    This is a stop signal: the orchestrator must not try any further
    fallback method and must surface this error to its caller unchanged.
    """

    exit_code = 8
    failure_type = "access_denied"
