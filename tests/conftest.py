"""Pytest configuration and fixtures for sshca tests."""

import logging
import shutil
import subprocess
import tempfile
from io import StringIO
from pathlib import Path

import pytest

import sshca.logging as sshca_logging
from sshca.config import get_settings
from sshca.core.keys import PublicKey
from sshca.core.signing import Terminal

TEST_PUBLIC_KEY = (
    b"ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIHwXYROIrAfv9RS4LyCPdsPGy6EqM+vncrrZXzVJbNuV john@doe\n"
)
FAKE_CERTIFICATE = b"ssh-ed25519-cert-v01@openssh.com AAAAfakecertificate john@doe\n"


@pytest.fixture(autouse=True)
def reset_global_state():
    """Undo logging setup and cached settings between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    logger = logging.getLogger("sshca")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    sshca_logging._initialized = False


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_public_key_bytes():
    """The authorized_keys line of the test key, with its newline."""
    return TEST_PUBLIC_KEY


@pytest.fixture
def test_public_key():
    """The public key used across tests, parsed."""
    return PublicKey(TEST_PUBLIC_KEY)


@pytest.fixture
def ca_key_files(temp_dir):
    """
    A CA key pair on disk.

    The private key is never read by sshca, so its contents only matter to
    tests that run the real ssh-keygen.
    """
    private_key = temp_dir / "ca"
    private_key.write_bytes(b"not really a private key\n")
    public_key = temp_dir / "ca.pub"
    public_key.write_bytes(TEST_PUBLIC_KEY)
    return {"private": private_key, "public": public_key}


@pytest.fixture
def fake_certificate():
    """What the fake ssh-keygen writes as the certificate."""
    return FAKE_CERTIFICATE


@pytest.fixture
def terminal():
    """A terminal whose operator has already pressed Enter once."""
    return Terminal(stdin=StringIO("\n"), stdout=StringIO(), stderr=StringIO())


@pytest.fixture
def closed_terminal():
    """A terminal whose input is already at EOF (Ctrl-D)."""
    return Terminal(stdin=StringIO(""), stdout=StringIO(), stderr=StringIO())


@pytest.fixture
def fake_keygen():
    """
    Build a stand-in for subprocess.run that behaves like ssh-keygen -s.

    The returned callable records every command it was given in ``calls``.
    """

    def factory(certificate: bytes = FAKE_CERTIFICATE):
        def run(cmd, **kwargs):
            run.calls.append(cmd)
            key_path = Path(cmd[-1])
            cert_path = key_path.with_name(key_path.name.removesuffix(".pub") + "-cert.pub")
            cert_path.write_bytes(certificate)
            return subprocess.CompletedProcess(cmd, 0)

        run.calls = []
        return run

    return factory


@pytest.fixture
def real_ca(temp_dir):
    """Generate a real Ed25519 CA with ssh-keygen."""
    if shutil.which("ssh-keygen") is None:
        pytest.skip("ssh-keygen is not installed")
    key_path = temp_dir / "ca_key"
    subprocess.run(
        ["ssh-keygen", "-t", "ed25519", "-f", str(key_path), "-N", "", "-C", "test-ca"],
        capture_output=True,
        check=True,
    )
    return {
        "private": key_path,
        "public": key_path.with_name("ca_key.pub"),
        "private_bytes": key_path.read_bytes(),
    }


@pytest.fixture
def user_keypair(temp_dir):
    """Generate a user key pair with ssh-keygen."""
    if shutil.which("ssh-keygen") is None:
        pytest.skip("ssh-keygen is not installed")
    key_path = temp_dir / "id_ed25519"
    subprocess.run(
        ["ssh-keygen", "-t", "ed25519", "-f", str(key_path), "-N", "", "-C", "alice@example.com"],
        capture_output=True,
        check=True,
    )
    return {"private": key_path, "public": key_path.with_name("id_ed25519.pub")}
