"""SSH Certificate Authority service backed by a CA key on disk."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Self

from sshca.core.exceptions import ConfirmationAborted, MissingKey, SigningError
from sshca.core.keys import PublicKey
from sshca.core.signing import SigningBackend, SignRequest, SignResult, Terminal
from sshca.logging import get_audit_logger, get_logger
from sshca.metrics import record_sign_request, track_signing_duration

logger = get_logger(__name__)


class ServiceState(str, Enum):
    """Lifecycle of a CAService. There is no shutdown state."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class CAIdentity:
    """
    The CA key pair.

    The private key is only ever passed to ssh-keygen by path; sshca never
    reads it. The public key is loaded once and served to clients verbatim.
    """

    private_key_path: str
    public_key: PublicKey

    @classmethod
    def load(
        cls, private_key_path: str | Path, public_key_path: str | Path | None = None
    ) -> Self:
        """
        Load a CA identity from disk.

        Args:
            private_key_path: Path to the CA private key
            public_key_path: Path to the CA public key (defaults to
                <private_key_path>.pub)

        Raises:
            MissingKey: If the private key is missing or is a directory, or the
                public key cannot be read
            InvalidKeyFormat: If the public key cannot be parsed
        """
        # Friendlier errors for what would make ssh-keygen fail later. The
        # signing call is still the authoritative check.
        private_key = Path(private_key_path)
        if not private_key.exists():
            raise MissingKey(f"private key {private_key} does not exist")
        if private_key.is_dir():
            raise MissingKey(f"private key path {private_key} points to a directory")

        if not public_key_path:
            public_key_path = f"{private_key_path}.pub"

        return cls(
            private_key_path=str(private_key_path),
            public_key=PublicKey.from_file(public_key_path),
        )


class CAService:
    """
    Signs public keys with the CA and hands out the CA public key.

    One instance serves every connection. Each request is shown to the
    operator and, unless ``skip_confirmation`` is set, waits for a line on
    the terminal before ssh-keygen is run.
    """

    def __init__(
        self,
        identity: CAIdentity,
        skip_confirmation: bool = False,
        terminal: Terminal | None = None,
        keygen_program: str = "ssh-keygen",
    ):
        self.state = ServiceState.UNINITIALIZED
        self.identity = identity
        self.skip_confirmation = skip_confirmation
        self.terminal = terminal or Terminal()
        self._keygen_lock = threading.Lock()
        self.backend = SigningBackend(
            identity.private_key_path,
            terminal=self.terminal,
            lock=self._keygen_lock,
            program=keygen_program,
        )
        self.audit = get_audit_logger()
        self.state = ServiceState.READY

    @classmethod
    def from_paths(
        cls,
        private_key_path: str | Path,
        public_key_path: str | Path | None = None,
        **kwargs,
    ) -> Self:
        """Load the CA identity from disk and build a service around it."""
        return cls(CAIdentity.load(private_key_path, public_key_path), **kwargs)

    def get_ca_public_key(self) -> PublicKey:
        """Return the CA public key exactly as it was read."""
        return self.identity.public_key

    def sign_public_key(self, request: SignRequest, actor: str = "local") -> SignResult:
        """
        Sign the public key in ``request``.

        Raises:
            ConfirmationAborted: If the operator's input closed before confirming
            SigningError: If ssh-keygen fails
        """
        cert_type = str(request.certificate_type)
        fingerprint = request.public_key.fingerprint

        self.terminal.write_line(request.describe())
        try:
            self._confirm()
        except ConfirmationAborted as e:
            record_sign_request(cert_type, "aborted")
            self.audit.sign_denied(actor, fingerprint, str(e))
            raise

        try:
            with track_signing_duration(cert_type):
                result = self.backend.sign(request)
        except SigningError as e:
            record_sign_request(cert_type, "failed")
            self.audit.cert_signed(
                actor,
                cert_type,
                request.identity,
                fingerprint,
                request.principals,
                success=False,
                error=str(e),
            )
            raise

        record_sign_request(cert_type, "signed")
        self.audit.cert_signed(
            actor, cert_type, request.identity, fingerprint, request.principals
        )
        return result

    def _confirm(self) -> None:
        # Any line counts as confirmation. A closed stream means the operator
        # went away (Ctrl-D) and the request is refused.
        if self.skip_confirmation:
            return
        self.terminal.write_line("press enter to sign, Ctrl-D to refuse")
        line = self.terminal.read_line()
        if not line.endswith("\n"):
            raise ConfirmationAborted("signing request was not confirmed")
