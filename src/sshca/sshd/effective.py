"""Queries against sshd's effective configuration."""

from __future__ import annotations

import re
from pathlib import Path

from sshca.core.exceptions import CommandFailed, ReadError
from sshca.sshd.process import run_checked


def lookup(config_path: str | Path, key: str, sshd_program: str = "sshd") -> list[str]:
    """
    Look up ``key`` in the effective sshd configuration.

    This does not search the file itself. ``sshd -T`` resolves defaults and
    includes, so keys that are not written anywhere still have values.

    Args:
        config_path: sshd_config to evaluate
        key: Option name, in any case
        sshd_program: sshd binary

    Returns:
        Every value of the key, in the order sshd prints them. An empty list
        if the key is not set.

    Raises:
        ReadError: If sshd cannot be run or rejects the configuration
    """
    try:
        out, _ = run_checked([sshd_program, "-T", "-f", str(config_path)])
    except CommandFailed as e:
        raise ReadError(f"failed to fetch effective config: {e}") from e

    # sshd -T prints lowercase option names
    key = key.lower()
    pattern = re.compile(rf"^{re.escape(key)} (.*)$", re.MULTILINE)
    text = out.decode("utf-8", errors="surrogateescape")
    return pattern.findall(text)
