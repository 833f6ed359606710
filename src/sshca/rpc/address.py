"""host:port parsing shared by the server and the client."""

from __future__ import annotations

from sshca.core.exceptions import ConfigurationError


def parse_address(address: str) -> tuple[str, int]:
    """
    Split ``host:port`` into its parts.

    IPv6 hosts are written in brackets (``[::1]:2222``). An empty host
    (``:2222``) means every interface when listening.

    Raises:
        ConfigurationError: If the port is missing or not a valid port number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) < 65536:
        raise ConfigurationError(f"invalid address {address!r}, expected host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)
