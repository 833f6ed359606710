"""Tests for sshca.core.signing module."""

import subprocess
import threading
import time
from io import StringIO
from pathlib import Path
from unittest.mock import patch

import pytest

from sshca.core.exceptions import SigningError
from sshca.core.keys import CertificateType
from sshca.core.signing import (
    SIGNING_FAILED_MESSAGE,
    SigningBackend,
    SignRequest,
    Terminal,
)

FINGERPRINT = "SHA256:nbtA2MPjSSVod4bmKFSZ60I2DOnD0AHXXnbsL5TTPt8"


@pytest.fixture
def host_request(test_public_key):
    return SignRequest(
        identity="test",
        certificate_type=CertificateType.HOST,
        principals=["asdf"],
        public_key=test_public_key,
    )


@pytest.fixture
def user_request(test_public_key):
    return SignRequest(
        identity="test",
        certificate_type=CertificateType.USER,
        principals=["asdf", "qwerty"],
        public_key=test_public_key,
    )


class TestTerminal:
    """Tests for the Terminal helper."""

    def test_write_line(self):
        out = StringIO()
        Terminal(stdin=StringIO(), stdout=out, stderr=StringIO()).write_line("hello")
        assert out.getvalue() == "hello\n"

    def test_read_line(self):
        term = Terminal(stdin=StringIO("first\nsecond\n"), stdout=StringIO(), stderr=StringIO())
        assert term.read_line() == "first\n"
        assert term.read_line() == "second\n"
        assert term.read_line() == ""


class TestSignRequest:
    """Tests for the request summary shown to the operator."""

    def test_describe_host(self, host_request):
        assert host_request.describe() == (
            f"make host certificate for ssh-ed25519 key (fingerprint {FINGERPRINT}) for asdf"
        )

    def test_describe_user(self, user_request):
        assert user_request.describe() == (
            f"make user certificate for ssh-ed25519 key (fingerprint {FINGERPRINT}) "
            "for asdf,qwerty"
        )


class TestBuildArgs:
    """Tests for the ssh-keygen command line."""

    def test_user_args(self, user_request):
        backend = SigningBackend("/etc/ca/ca_key", terminal=Terminal())
        args = backend.build_args(user_request, "/tmp/x/key.pub")

        assert args == [
            "ssh-keygen", "-I", "test", "-n", "asdf,qwerty",
            "-s", "/etc/ca/ca_key", "/tmp/x/key.pub",
        ]

    def test_host_args(self, host_request):
        backend = SigningBackend("/etc/ca/ca_key", terminal=Terminal())
        args = backend.build_args(host_request, "/tmp/x/key.pub")

        assert args == [
            "ssh-keygen", "-I", "test", "-n", "asdf", "-h",
            "-s", "/etc/ca/ca_key", "/tmp/x/key.pub",
        ]

    def test_custom_program(self, user_request):
        backend = SigningBackend("/ca", terminal=Terminal(), program="/opt/bin/ssh-keygen")
        assert backend.build_args(user_request, "k.pub")[0] == "/opt/bin/ssh-keygen"


class TestSign:
    """Tests for SigningBackend.sign with ssh-keygen replaced."""

    def test_returns_certificate(self, terminal, user_request, fake_keygen, fake_certificate):
        backend = SigningBackend("/ca", terminal=terminal)
        run = fake_keygen()

        with patch("sshca.core.signing.subprocess.run", side_effect=run) as mock_run:
            result = backend.sign(user_request)

        assert result.certificate == fake_certificate
        kwargs = mock_run.call_args.kwargs
        assert kwargs["stdin"] is terminal.stdin
        assert kwargs["stdout"] is terminal.stdout
        assert kwargs["stderr"] is terminal.stderr
        assert kwargs["check"] is True

    def test_writes_key_for_keygen(self, terminal, user_request, test_public_key_bytes):
        seen = {}

        def run(cmd, **kwargs):
            key_path = Path(cmd[-1])
            seen["key"] = key_path.read_bytes()
            seen["mode"] = key_path.stat().st_mode & 0o777
            seen["path"] = key_path
            key_path.with_name("key-cert.pub").write_bytes(b"cert\n")
            return subprocess.CompletedProcess(cmd, 0)

        with patch("sshca.core.signing.subprocess.run", side_effect=run):
            SigningBackend("/ca", terminal=terminal).sign(user_request)

        assert seen["key"] == test_public_key_bytes
        assert seen["mode"] == 0o600
        assert not seen["path"].exists(), "temporary directory should be removed"

    def test_keygen_failure(self, terminal, user_request):
        backend = SigningBackend("/ca", terminal=terminal)
        error = subprocess.CalledProcessError(255, ["ssh-keygen"])

        with patch("sshca.core.signing.subprocess.run", side_effect=error):
            with pytest.raises(SigningError) as exc_info:
                backend.sign(user_request)

        assert str(exc_info.value) == SIGNING_FAILED_MESSAGE
        assert exc_info.value.returncode == 255

    def test_keygen_missing(self, terminal, user_request):
        backend = SigningBackend("/ca", terminal=terminal, program="no-such-keygen")

        with patch("sshca.core.signing.subprocess.run", side_effect=FileNotFoundError(2, "nope")):
            with pytest.raises(SigningError) as exc_info:
                backend.sign(user_request)

        assert str(exc_info.value) == SIGNING_FAILED_MESSAGE
        assert exc_info.value.returncode is None

    def test_no_certificate_written(self, terminal, user_request):
        backend = SigningBackend("/ca", terminal=terminal)

        with patch(
            "sshca.core.signing.subprocess.run",
            return_value=subprocess.CompletedProcess([], 0),
        ):
            with pytest.raises(SigningError, match="failed to read certificate"):
                backend.sign(user_request)

    def test_invocations_never_overlap(self, terminal, user_request):
        """Concurrent requests take turns on the terminal."""
        state = {"active": 0, "max_active": 0}
        state_lock = threading.Lock()

        def run(cmd, **kwargs):
            with state_lock:
                state["active"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
            time.sleep(0.05)
            Path(cmd[-1]).with_name("key-cert.pub").write_bytes(b"cert\n")
            with state_lock:
                state["active"] -= 1
            return subprocess.CompletedProcess(cmd, 0)

        backend = SigningBackend("/ca", terminal=terminal)
        results = []

        def sign():
            results.append(backend.sign(user_request))

        with patch("sshca.core.signing.subprocess.run", side_effect=run):
            threads = [threading.Thread(target=sign) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len(results) == 4
        assert state["max_active"] == 1
