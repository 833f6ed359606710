"""Certificate signing by shelling out to OpenSSH ssh-keygen."""

from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from sshca.core.exceptions import SigningError
from sshca.core.keys import CertificateType, PublicKey
from sshca.logging import get_logger

logger = get_logger(__name__)

# Sent to remote callers. ssh-keygen output may be interleaved with other
# sessions, so the details stay on the server's terminal and log.
SIGNING_FAILED_MESSAGE = "failed to sign key (see server for extra details)"


@dataclass
class Terminal:
    """The interactive streams shared by the operator and ssh-keygen."""

    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)

    def write_line(self, line: str) -> None:
        self.stdout.write(line + "\n")
        self.stdout.flush()

    def read_line(self) -> str:
        return self.stdin.readline()


@dataclass
class SignRequest:
    """Parameters of a single signing request."""

    identity: str  # passed to ssh-keygen -I
    certificate_type: CertificateType
    principals: list[str]
    public_key: PublicKey

    def describe(self) -> str:
        """Human readable summary shown to the operator before signing."""
        return (
            f"make {self.certificate_type} certificate for "
            f"{self.public_key.algorithm} key (fingerprint {self.public_key.fingerprint}) "
            f"for {','.join(self.principals)}"
        )


@dataclass
class SignResult:
    """Result of signing a public key."""

    certificate: bytes  # contents of the -cert.pub file, unmodified


class SigningBackend:
    """
    Runs ssh-keygen to sign public keys with a CA key on disk.

    ssh-keygen is attached to the service's terminal so it can ask for the
    CA key's passphrase. ``lock`` is held for the lifetime of each ssh-keygen
    process so that two requests never prompt on the terminal at once.
    """

    def __init__(
        self,
        private_key_path: str | Path,
        terminal: Terminal | None = None,
        lock: threading.Lock | None = None,
        program: str = "ssh-keygen",
    ):
        self.private_key_path = str(private_key_path)
        self.terminal = terminal or Terminal()
        self.lock = lock or threading.Lock()
        self.program = program

    def build_args(self, request: SignRequest, key_path: str | Path) -> list[str]:
        """Build the ssh-keygen command line for ``request``."""
        return [
            self.program,
            "-I",
            request.identity,
            "-n",
            ",".join(request.principals),
            *request.certificate_type.keygen_args,
            "-s",
            self.private_key_path,
            str(key_path),
        ]

    def sign(self, request: SignRequest) -> SignResult:
        """
        Sign the public key in ``request``.

        Returns:
            SignResult holding the raw certificate bytes

        Raises:
            SigningError: If ssh-keygen fails or cannot be started
        """
        # ssh-keygen reads the key from disk and writes <name>-cert.pub next to it
        with tempfile.TemporaryDirectory(prefix="sshca.") as tmpdir:
            key_path = Path(tmpdir) / "key.pub"
            try:
                key_path.write_bytes(request.public_key.serialize())
                os.chmod(key_path, 0o600)
            except OSError as e:
                raise SigningError(f"failed to write key to disk: {e}") from e

            self._run(self.build_args(request, key_path))

            cert_path = Path(tmpdir) / "key-cert.pub"
            try:
                certificate = cert_path.read_bytes()
            except OSError as e:
                raise SigningError(f"failed to read certificate from disk: {e}") from e

        return SignResult(certificate=certificate)

    def _run(self, cmd: list[str]) -> None:
        with self.lock:
            self.terminal.stdout.flush()
            try:
                subprocess.run(
                    cmd,
                    stdin=self.terminal.stdin,
                    stdout=self.terminal.stdout,
                    stderr=self.terminal.stderr,
                    check=True,
                )
            except subprocess.CalledProcessError as e:
                logger.error(
                    "ssh-keygen exited with status %s",
                    e.returncode,
                    fields={"cmd": " ".join(cmd)},
                )
                raise SigningError(SIGNING_FAILED_MESSAGE, returncode=e.returncode) from e
            except OSError as e:
                logger.error(
                    "failed to launch %s: %s",
                    self.program,
                    e,
                    fields={"cmd": " ".join(cmd)},
                )
                raise SigningError(SIGNING_FAILED_MESSAGE) from e
