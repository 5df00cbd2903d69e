"""Pluggable JWT signers for client assertions.

Backends:
- SoftwareKeySigner: PEM key file
- PivSigner: YubiKey PIV slot (optional extra "piv")
- Pkcs11Signer: PKCS#11 token or HSM (optional extra "pkcs11")
- PrivateCaSigner: any of the above plus an x5c certificate chain
"""

from __future__ import annotations

__all__ = [
    "JwtSigner",
    "PivSigner",
    "Pkcs11Signer",
    "PrivateCaSigner",
    "SignAlgorithm",
    "SoftwareKeySigner",
    "create_signer",
    "sign_jwt",
]

from idaas_broker.signer.base import JwtSigner, SignAlgorithm
from idaas_broker.signer.factory import create_signer
from idaas_broker.signer.jws import sign_jwt
from idaas_broker.signer.piv import PivSigner
from idaas_broker.signer.pkcs11 import Pkcs11Signer
from idaas_broker.signer.private_ca import PrivateCaSigner
from idaas_broker.signer.software import SoftwareKeySigner
