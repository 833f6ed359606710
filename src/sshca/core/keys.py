"""SSH public keys in authorized_keys format."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Self

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import load_ssh_public_key

from sshca.core.exceptions import InvalidKeyFormat, MissingKey


class CertificateType(str, Enum):
    """Type of SSH certificate."""

    USER = "user"
    HOST = "host"

    def __str__(self) -> str:
        return self.value

    @property
    def keygen_args(self) -> list[str]:
        """Extra ssh-keygen flags for this certificate type."""
        if self is CertificateType.HOST:
            return ["-h"]
        return []


def _single_line(data: bytes) -> bytes:
    """Strip one trailing line terminator and reject anything multi-line."""
    line = data.removesuffix(b"\n").removesuffix(b"\r")
    if b"\n" in line or b"\r" in line:
        raise InvalidKeyFormat("public key must be a single line")
    if not line.strip():
        raise InvalidKeyFormat("public key is empty")
    return line


def _sha256_fingerprint(blob: bytes) -> str:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(blob)
    encoded = base64.b64encode(digest.finalize()).decode("ascii").rstrip("=")
    return f"SHA256:{encoded}"


@dataclass(frozen=True)
class PublicKey:
    """
    An SSH public key kept in its file representation.

    The raw bytes are parsed when the object is created, so a PublicKey
    always holds a valid key and its algorithm and fingerprint are always
    available. ``serialize()`` hands back the original bytes untouched:
    comparisons against key files elsewhere on the system are byte-exact.
    """

    data: bytes
    algorithm: str = field(init=False, compare=False)
    fingerprint: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            raise InvalidKeyFormat(f"public key must be bytes, not {type(self.data).__name__}")

        line = _single_line(self.data)
        fields = line.split()
        if len(fields) < 2:
            raise InvalidKeyFormat("public key must have a type and a key blob")

        try:
            blob = base64.b64decode(fields[1], validate=True)
            load_ssh_public_key(line)
        except (binascii.Error, ValueError, UnsupportedAlgorithm) as e:
            raise InvalidKeyFormat(f"failed to parse public key: {e}") from e

        object.__setattr__(self, "algorithm", fields[0].decode("ascii"))
        object.__setattr__(self, "fingerprint", _sha256_fingerprint(blob))

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse an authorized_keys line. Raises InvalidKeyFormat."""
        return cls(data)

    @classmethod
    def from_file(cls, path: str | Path) -> Self:
        """
        Read and parse a public key file.

        Raises:
            MissingKey: If the file cannot be read
            InvalidKeyFormat: If the contents are not a public key
        """
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise MissingKey(f"failed to read public key at {path}: {e}") from e
        return cls(data)

    def serialize(self) -> bytes:
        """Return the exact bytes the key was parsed from."""
        return self.data

    def __str__(self) -> str:
        return self.data.decode("utf-8", errors="replace")
