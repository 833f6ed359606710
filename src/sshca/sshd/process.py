"""Running sshd with captured output."""

from __future__ import annotations

import shlex
import subprocess

from sshca.core.exceptions import CommandFailed


def run_checked(cmd: list[str]) -> tuple[bytes, bytes]:
    """
    Run ``cmd`` capturing stdout and stderr.

    Returns:
        Tuple of (stdout, stderr)

    Raises:
        CommandFailed: If the command exits non-zero (``returncode`` set) or
            cannot be started (``returncode`` None)
    """
    try:
        result = subprocess.run(cmd, capture_output=True, check=True)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr or b""
        raise CommandFailed(
            f"command {shlex.join(cmd)!r} failed with exit code {e.returncode} - stderr:\n"
            f"{stderr.decode(errors='replace')}",
            returncode=e.returncode,
            stderr=stderr,
        ) from e
    except OSError as e:
        raise CommandFailed(f"failed to execute {shlex.join(cmd)!r}: {e}") from e
    return result.stdout, result.stderr
