"""Remote calls to the CA over a socket pair or TCP."""

from sshca.rpc.client import (
    Client,
    LocalTransport,
    RemoteTransport,
    RPCOptions,
    StreamTransport,
    Transport,
)
from sshca.rpc.server import RPCServer, listen, serve

__all__ = [
    "Client",
    "LocalTransport",
    "RemoteTransport",
    "RPCOptions",
    "StreamTransport",
    "Transport",
    "RPCServer",
    "listen",
    "serve",
]
