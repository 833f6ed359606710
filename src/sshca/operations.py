"""Host-side operations: requesting certificates and trusting the CA."""

from __future__ import annotations

import getpass
import os
import re
import socket
from collections.abc import Iterable
from pathlib import Path

from sshca.core.exceptions import SSHCAError
from sshca.core.keys import CertificateType, PublicKey
from sshca.core.signing import SignRequest
from sshca.logging import get_audit_logger, get_logger
from sshca.rpc.client import Client
from sshca.sshd.effective import lookup
from sshca.sshd.modifier import Modifier

logger = get_logger(__name__)

HOST_KEY_RE = re.compile(r"^ssh_host_([^_]+)_key\.pub$")
USER_KEY_RE = re.compile(r"^id_([^_]+)\.pub$")


def key_id_from_path(key_path: str | Path) -> str:
    """
    Short name for a key, used in the certificate identity.

    Default OpenSSH key names map to their type (``ssh_host_ed25519_key.pub``
    and ``id_ed25519.pub`` both give ``ed25519``). Anything else is named
    after its file.
    """
    name = Path(key_path).name
    for pattern in (HOST_KEY_RE, USER_KEY_RE):
        match = pattern.match(name)
        if match:
            return match.group(1)
    return name.removesuffix(".pub")


def certificate_identity(key_path: str | Path, cert_type: CertificateType) -> str:
    """Build ``<hostname>_<user or "host">_<key id>``."""
    owner = "host" if cert_type is CertificateType.HOST else getpass.getuser()
    return "_".join([socket.gethostname(), owner, key_id_from_path(key_path)])


def certificate_path(key_path: str | Path) -> Path:
    """``key.pub`` is certified in ``key-cert.pub``."""
    return Path(f"{str(key_path).removesuffix('.pub')}-cert.pub")


def host_principals(extra: Iterable[str] = ()) -> list[str]:
    """Fully qualified and short hostname, then ``extra``, without duplicates."""
    fqdn = socket.getfqdn()
    candidates = [fqdn, fqdn.split(".")[0], *extra]
    return list(dict.fromkeys(p for p in candidates if p))


def generate_certificate(
    client: Client,
    public_key_path: str | Path,
    principals: list[str],
    cert_type: CertificateType,
    identity: str | None = None,
) -> Path:
    """
    Get ``public_key_path`` signed and write the certificate next to it.

    Returns:
        Path the certificate was written to
    """
    public_key = PublicKey.from_file(public_key_path)
    request = SignRequest(
        identity=identity or certificate_identity(public_key_path, cert_type),
        certificate_type=cert_type,
        principals=principals,
        public_key=public_key,
    )
    logger.info("requesting signature: %s", request.describe())

    result = client.sign_public_key(request)

    cert_path = certificate_path(public_key_path)
    cert_path.write_bytes(result.certificate)
    os.chmod(cert_path, 0o644)
    logger.info("wrote certificate to %s", cert_path)
    return cert_path


def sign_host_keys(
    client: Client,
    config_path: str | Path,
    principals: list[str],
    sshd_program: str = "sshd",
) -> list[Path]:
    """
    Certify every host key sshd uses and point sshd at the certificates.

    Host keys come from the effective ``HostKey`` values. Each key is tried
    even if an earlier one failed; the certificates that were written are
    added as ``HostCertificate`` lines in one validated commit.

    Returns:
        Paths of the written certificates

    Raises:
        ReadError: If the host keys cannot be determined
        ExceptionGroup: With every per-key and commit failure
    """
    host_keys = lookup(config_path, "HostKey", sshd_program)
    modifier = Modifier(config_path, sshd_program)
    errors: list[Exception] = []
    written: list[Path] = []

    for key_path in host_keys:
        try:
            cert_path = generate_certificate(
                client, f"{key_path}.pub", principals, CertificateType.HOST
            )
        except (SSHCAError, OSError) as e:
            logger.error("failed to certify host key %s: %s", key_path, e)
            errors.append(e)
            continue
        modifier.set("HostCertificate", str(cert_path))
        written.append(cert_path)

    if modifier.pending:
        try:
            modifier.commit()
        except SSHCAError as e:
            errors.append(e)

    if errors:
        raise ExceptionGroup("failed to configure host certificates", errors)
    return written


def append_if_not_present(path: str | Path, data: bytes) -> bool:
    """
    Append ``data`` as a line of ``path`` unless the file already contains it.

    Returns:
        True if the file was changed
    """
    path = Path(path)
    try:
        contents = path.read_bytes()
    except FileNotFoundError:
        contents = b""

    line = data.rstrip(b"\r\n")
    if line in contents:
        return False

    with path.open("ab") as f:
        if contents and not contents.endswith(b"\n"):
            f.write(b"\n")
        f.write(line + b"\n")
    return True


def trust_as_user_ca(
    public_key: PublicKey,
    trusted_keys_path: str | Path,
    config_path: str | Path,
    sshd_program: str = "sshd",
) -> None:
    """Trust ``public_key`` for user certificates (TrustedUserCAKeys)."""
    append_if_not_present(trusted_keys_path, public_key.serialize())

    modifier = Modifier(config_path, sshd_program)
    modifier.set_unique("TrustedUserCAKeys", str(trusted_keys_path))
    modifier.commit()

    get_audit_logger().ca_trusted("local", "user", public_key.fingerprint, str(trusted_keys_path))


def trust_as_host_ca(public_key: PublicKey, known_hosts_path: str | Path) -> None:
    """Trust ``public_key`` for host certificates of every host."""
    append_if_not_present(known_hosts_path, b"@cert-authority * " + public_key.serialize())
    get_audit_logger().ca_trusted("local", "host", public_key.fingerprint, str(known_hosts_path))
