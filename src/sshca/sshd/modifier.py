"""Validated, all-or-nothing edits to sshd_config."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sshca.core.exceptions import (
    CommandFailed,
    ReadError,
    RollbackFailed,
    SSHDConfigError,
    ValidationFailed,
    WriteError,
)
from sshca.logging import get_audit_logger, get_logger
from sshca.metrics import record_sshd_commit
from sshca.sshd.process import run_checked

logger = get_logger(__name__)

# sshd -t exits 0 for these, but sshd will not use the host key/certificate.
HOSTKEY_FAIL_CASES = (
    b"No matching private key for certificate",
    b"Could not load host certificate",
)

_TRAILING_BLANK_LINES = re.compile(r"\r?\n(?:[ \t]*\r?\n)*[ \t]*\Z")


class TransactionState(str, Enum):
    """Where the last commit() got to."""

    PENDING = "pending"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"  # rollback failed, file needs a manual fix


@dataclass(frozen=True)
class Modification:
    """
    A single sshd_config edit.

    Every line matching ``pattern`` is replaced with ``key value``. If
    nothing matches, the line is appended to the end of the file.
    """

    key: str
    value: str
    pattern: re.Pattern[str]

    @property
    def line(self) -> str:
        return f"{self.key} {self.value}"

    def apply(self, text: str) -> str:
        line = self.line
        if self.pattern.search(text):
            # callable replacement so backslashes in the value stay literal
            return self.pattern.sub(lambda _: line, text)

        body = _TRAILING_BLANK_LINES.sub("", text)
        if not body.strip():
            return f"{line}\n"
        return f"{body}\n{line}\n"


def _line_pattern(*words: str) -> re.Pattern[str]:
    # Matches the live and the commented out form of the line.
    escaped = " ".join(re.escape(word) for word in words)
    return re.compile(rf"^#?{escaped}.*$", re.MULTILINE)


class Modifier:
    """
    Safe wrapper to modify sshd configuration.

    ``set`` and ``set_unique`` only queue changes. ``commit`` applies them,
    checks the result with ``sshd -t`` and restores the original file if the
    check fails. The file is assumed to have a single writer.
    """

    def __init__(
        self,
        config_path: str | Path,
        sshd_program: str = "sshd",
        actor: str = "local",
    ):
        self.config_path = Path(config_path)
        self.sshd_program = sshd_program
        self.actor = actor
        self.state = TransactionState.PENDING
        self._modifications: list[Modification] = []
        self.audit = get_audit_logger()

    @property
    def pending(self) -> tuple[Modification, ...]:
        """Modifications queued since the last successful commit."""
        return tuple(self._modifications)

    def set(self, key: str, value: str) -> None:
        """
        Set ``key value``, leaving lines with the same key and another value.

        A line is only replaced if it already has this key and value
        (possibly commented out). Use this for options that may appear
        multiple times, such as HostKey or HostCertificate.
        """
        self._modifications.append(Modification(key, value, _line_pattern(key, value)))

    def set_unique(self, key: str, value: str) -> None:
        """
        Set a key that should appear at most once.

        Any line using the key, commented out or with a different value, is
        replaced.
        """
        self._modifications.append(Modification(key, value, _line_pattern(key)))

    def apply(self, text: str) -> str:
        """Apply the queued modifications to ``text`` in order."""
        for modification in self._modifications:
            text = modification.apply(text)
        return text

    def validate(self) -> None:
        """
        Check the configuration file with ``sshd -t``.

        Raises:
            ValidationFailed: If sshd rejects the file or cannot load a host
                key or certificate it names
        """
        cmd = [self.sshd_program, "-t", "-f", str(self.config_path)]
        try:
            _, stderr = run_checked(cmd)
        except CommandFailed as e:
            raise ValidationFailed(f"verification of modified sshd config failed: {e}") from e

        for fail_case in HOSTKEY_FAIL_CASES:
            if fail_case in stderr:
                raise ValidationFailed(
                    "verification of modified sshd config failed: "
                    f"invalid host key in sshd config ({fail_case.decode()})"
                )

    def commit(self) -> bool:
        """
        Apply the queued modifications to the config file.

        Returns:
            True if the file was changed, False if the modifications left it
            byte-for-byte the same (nothing is written or validated then)

        Raises:
            ReadError: If the file cannot be read
            WriteError: If the modified file cannot be written; the original
                file has been restored
            ValidationFailed: If sshd rejects the result; the original file
                has been restored
            RollbackFailed: If the write or validation failed and the original
                could not be restored
        """
        self.state = TransactionState.PENDING
        try:
            original = self.config_path.read_bytes()
        except OSError as e:
            raise ReadError(f"failed to read sshd config at {self.config_path}: {e}") from e

        # surrogateescape keeps undecodable bytes intact across the round trip
        text = original.decode("utf-8", errors="surrogateescape")
        final = self.apply(text).encode("utf-8", errors="surrogateescape")

        if final == original:
            logger.debug("sshd config unchanged", fields={"path": str(self.config_path)})
            self._finish(TransactionState.COMMITTED)
            record_sshd_commit("unchanged")
            return False

        try:
            self.config_path.write_bytes(final)
        except OSError as e:
            # A failed write may have truncated the file.
            cause = WriteError(f"failed to modify sshd config: {e}")
            self._rollback(original, cause)
            raise cause from e

        self.state = TransactionState.VALIDATING
        try:
            self.validate()
        except ValidationFailed as cause:
            self._rollback(original, cause)
            raise

        changes = [m.line for m in self._modifications]
        self._finish(TransactionState.COMMITTED)
        record_sshd_commit("committed")
        self.audit.sshd_committed(self.actor, str(self.config_path), changes)
        return True

    def _rollback(self, original: bytes, cause: SSHDConfigError) -> None:
        try:
            self.config_path.write_bytes(original)
        except OSError as restore_error:
            self.state = TransactionState.FAILED
            record_sshd_commit("failed")
            self.audit.sshd_rolled_back(
                self.actor, str(self.config_path), str(cause), restored=False
            )
            raise RollbackFailed(cause, restore_error) from cause

        self.state = TransactionState.ROLLED_BACK
        record_sshd_commit("rolled_back")
        self.audit.sshd_rolled_back(self.actor, str(self.config_path), str(cause))

    def _finish(self, state: TransactionState) -> None:
        # Successful transactions reset the queue so the instance can be reused.
        self._modifications.clear()
        self.state = state
