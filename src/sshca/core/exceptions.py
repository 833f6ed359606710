"""Custom exceptions for sshca."""

from __future__ import annotations


class SSHCAError(Exception):
    """Base exception for all sshca errors."""

    pass


class ConfigurationError(SSHCAError):
    """Invalid combination of local/remote options."""

    pass


class KeyMaterialError(SSHCAError):
    """Base exception for bad key material."""

    pass


class MissingKey(KeyMaterialError):
    """Key file is missing, unreadable or not a regular file."""

    pass


class InvalidKeyFormat(KeyMaterialError):
    """Bytes are not a single well-formed authorized_keys entry."""

    pass


class SigningError(SSHCAError):
    """
    Error signing a certificate.

    The message is safe to send to a remote peer. The exit status of the
    signing tool is kept on ``returncode`` for server-side diagnostics and is
    None when the tool could not be launched at all.
    """

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class ConfirmationAborted(SSHCAError):
    """Operator input closed before the signing request was confirmed."""

    pass


class TransportError(SSHCAError):
    """The connection to the CA server broke or could not be used."""

    pass


class DialFailed(TransportError):
    """Could not connect to the remote CA server."""

    pass


class RemoteError(SSHCAError):
    """The CA server answered a call with an error."""

    def __init__(self, method: str, message: str):
        super().__init__(f"{method}: {message}")
        self.method = method
        self.message = message


class CommandFailed(SSHCAError):
    """An external command exited non-zero or could not be started."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: bytes = b"",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class SSHDConfigError(SSHCAError):
    """Base exception for sshd configuration transactions."""

    pass


class ReadError(SSHDConfigError):
    """The sshd configuration could not be read or parsed."""

    pass


class WriteError(SSHDConfigError):
    """The modified sshd configuration could not be written."""

    pass


class ValidationFailed(SSHDConfigError):
    """sshd rejected the modified configuration. The original was restored."""

    pass


class RollbackFailed(SSHDConfigError):
    """
    A write or validation failed and the original configuration could not be
    restored.

    This is the one state that needs an operator to fix the file by hand.
    """

    def __init__(self, cause: SSHDConfigError, restore_error: OSError):
        super().__init__(
            f"{cause}\n"
            f"failed to revert previous sshd config (MANUAL FIX NEEDED): {restore_error}"
        )
        self.cause = cause
        self.restore_error = restore_error
