"""Resolve a SignerDescriptor into a live signer."""

from __future__ import annotations

__all__ = ["create_signer"]

import os
from pathlib import Path
from typing import assert_never

from idaas_broker.config import (
    Pkcs11SignerConfig,
    PivSignerConfig,
    PrivateCaSignerConfig,
    SignerDescriptor,
    SoftwareKeySignerConfig,
)
from idaas_broker.constants import ENV_PKCS8_PASSWORD, ENV_PKCS11_PIN, ENV_YUBIKEY_PIN
from idaas_broker.signer.base import JwtSigner, SignAlgorithm
from idaas_broker.signer.piv import PivSigner
from idaas_broker.signer.pkcs11 import Pkcs11Signer
from idaas_broker.signer.private_ca import PrivateCaSigner, load_certificate_chain
from idaas_broker.signer.software import SoftwareKeySigner


def create_signer(descriptor: SignerDescriptor) -> JwtSigner:
    """Build the signer for a descriptor.

    Secrets missing from the descriptor are read from environment variables.

    Raises:
        SignerError: If the backend cannot be initialized.
    """
    algorithm = SignAlgorithm(descriptor.algorithm) if descriptor.algorithm else None

    match descriptor:
        case SoftwareKeySignerConfig():
            return SoftwareKeySigner.from_file(
                Path(descriptor.key_path),
                password=descriptor.password or os.environ.get(ENV_PKCS8_PASSWORD),
                algorithm=algorithm,
                kid=descriptor.kid,
            )
        case PivSignerConfig():
            return PivSigner(
                slot=descriptor.slot,
                pin=descriptor.pin or os.environ.get(ENV_YUBIKEY_PIN),
                serial=descriptor.serial,
                algorithm=algorithm,
                kid=descriptor.kid,
            )
        case Pkcs11SignerConfig():
            return Pkcs11Signer(
                module_path=descriptor.module_path,
                token_label=descriptor.token_label,
                key_label=descriptor.key_label,
                pin=descriptor.pin or os.environ.get(ENV_PKCS11_PIN),
                algorithm=algorithm,
                kid=descriptor.kid,
            )
        case PrivateCaSignerConfig():
            return PrivateCaSigner(
                inner=create_signer(descriptor.key),
                chain=load_certificate_chain(Path(descriptor.certificate_path)),
                algorithm=algorithm,
                kid=descriptor.kid,
            )
        case _:
            assert_never(descriptor)
