"""Core business logic for sshca."""

from sshca.core.ca import CAIdentity, CAService, ServiceState
from sshca.core.exceptions import (
    SSHCAError,
    ConfigurationError,
    KeyMaterialError,
    MissingKey,
    InvalidKeyFormat,
    SigningError,
    ConfirmationAborted,
)
from sshca.core.keys import CertificateType, PublicKey
from sshca.core.signing import SigningBackend, SignRequest, SignResult, Terminal

__all__ = [
    "CAIdentity",
    "CAService",
    "ServiceState",
    "CertificateType",
    "PublicKey",
    "SigningBackend",
    "SignRequest",
    "SignResult",
    "Terminal",
    "SSHCAError",
    "ConfigurationError",
    "KeyMaterialError",
    "MissingKey",
    "InvalidKeyFormat",
    "SigningError",
    "ConfirmationAborted",
]
