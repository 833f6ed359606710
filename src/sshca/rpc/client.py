"""Client side of the CA protocol, for local and remote CAs."""

from __future__ import annotations

import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Self, TypeVar

from pydantic import ValidationError

from sshca.core.ca import CAService
from sshca.core.exceptions import ConfigurationError, DialFailed, RemoteError, TransportError
from sshca.core.keys import PublicKey
from sshca.core.signing import SignRequest, SignResult, Terminal
from sshca.logging import get_logger
from sshca.rpc.address import parse_address
from sshca.rpc.schemas import (
    GET_CA_PUBLIC_KEY,
    MAX_MESSAGE_SIZE,
    SIGN_PUBLIC_KEY,
    GetCAPublicKeyArgs,
    PublicKeyReply,
    RPCRequest,
    RPCResponse,
    SignArgs,
    SignReply,
    WireModel,
    encode,
)
from sshca.rpc.server import RPCServer

logger = get_logger(__name__)

R = TypeVar("R", bound=WireModel)


class Transport(ABC):
    """Carries calls to a CA server and returns their results."""

    @abstractmethod
    def call(self, method: str, params: WireModel, reply_type: type[R]) -> R:
        """
        Call ``method`` and wait for its reply.

        Raises:
            RemoteError: If the server answered with an error
            TransportError: If the connection failed
        """

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""


class StreamTransport(Transport):
    """
    Newline-delimited JSON calls over a connected stream socket.

    Calls are serialized: a second thread waits until the first call's reply
    has arrived. There is no timeout.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._rfile = sock.makefile("rb")
        self._wfile = sock.makefile("wb")
        self._lock = threading.Lock()
        self._seq = 0

    def call(self, method: str, params: WireModel, reply_type: type[R]) -> R:
        with self._lock:
            self._seq += 1
            request = RPCRequest(id=self._seq, method=method, params=params)
            try:
                self._wfile.write(encode(request))
                self._wfile.flush()
                line = self._rfile.readline(MAX_MESSAGE_SIZE + 1)
            except OSError as e:
                raise TransportError(f"connection to CA server failed: {e}") from e

        if not line:
            raise TransportError("connection to CA server closed")
        try:
            response = RPCResponse.model_validate_json(line)
        except ValidationError as e:
            raise TransportError(f"malformed reply to {method}: {e}") from e

        if response.id != request.id:
            raise TransportError(f"reply id {response.id} does not match request id {request.id}")
        if response.error is not None:
            raise RemoteError(method, response.error)
        if not isinstance(response.result, reply_type):
            raise TransportError(f"unexpected reply to {method}")
        return response.result

    def close(self) -> None:
        self._rfile.close()
        self._wfile.close()
        self._sock.close()


class LocalTransport(StreamTransport):
    """
    One end of a socket pair whose other end is served in this process.

    The serving thread is a daemon and lives until the process exits or the
    transport is closed.
    """

    def __init__(self, sock: socket.socket, server: RPCServer, thread: threading.Thread):
        super().__init__(sock)
        self.server = server
        self.thread = thread

    @classmethod
    def start(cls, service: CAService) -> Self:
        """Serve ``service`` on a fresh socket pair and connect to it."""
        server_end, client_end = socket.socketpair()
        server = RPCServer(service)
        thread = threading.Thread(
            target=server.serve_connection,
            args=(server_end, "local"),
            name="sshca-local-server",
            daemon=True,
        )
        thread.start()
        return cls(client_end, server, thread)


class RemoteTransport(StreamTransport):
    """A TCP connection to an ``sshca server``."""

    def __init__(self, sock: socket.socket, address: str):
        super().__init__(sock)
        self.address = address

    @classmethod
    def dial(cls, address: str) -> Self:
        """
        Connect to a CA server at ``host:port``.

        Raises:
            DialFailed: If the server cannot be reached
        """
        host, port = parse_address(address)
        try:
            sock = socket.create_connection((host or "localhost", port))
        except OSError as e:
            raise DialFailed(f"failed to connect to server at {address}: {e}") from e
        return cls(sock, address)


class Client:
    """Blocking client for the CA calls, independent of the transport."""

    def __init__(self, transport: Transport):
        self.transport = transport

    def get_ca_public_key(self) -> PublicKey:
        """Fetch the CA public key."""
        reply = self.transport.call(GET_CA_PUBLIC_KEY, GetCAPublicKeyArgs(), PublicKeyReply)
        return PublicKey(reply.ca_public_key)

    def sign_public_key(self, request: SignRequest) -> SignResult:
        """Ask the CA to sign the key in ``request``."""
        args = SignArgs(
            identity=request.identity,
            certificate_type=request.certificate_type,
            principals=request.principals,
            public_key=request.public_key.serialize(),
        )
        reply = self.transport.call(SIGN_PUBLIC_KEY, args, SignReply)
        return SignResult(certificate=reply.certificate)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass
class RPCOptions:
    """Options shared by every command that talks to a CA."""

    local: bool = False
    ca_private_key_path: str = ""
    ca_public_key_path: str = ""
    remote: str = ""
    keygen_program: str = "ssh-keygen"
    terminal: Terminal | None = None

    def validate(self) -> None:
        """
        Ensure exactly one of local and remote operation is selected.

        Raises:
            ConfigurationError: If the combination is invalid
        """
        if self.local and self.remote:
            raise ConfigurationError("both --local and --remote cannot be used at the same time")
        if not self.local and not self.remote:
            raise ConfigurationError("one of --local or --remote must be used")
        if self.local and not self.ca_private_key_path:
            raise ConfigurationError("--ca-private must be set when --local is used")

    def make_client(self) -> Client:
        """
        Build a client for the selected mode.

        Local mode runs the CA in this process without confirmation prompts,
        because the operator is already the one asking. Remote mode connects
        to an ``sshca server``.
        """
        self.validate()
        if self.local:
            return self._make_local_client()
        return self._make_remote_client()

    def _make_local_client(self) -> Client:
        service = CAService.from_paths(
            self.ca_private_key_path,
            self.ca_public_key_path or None,
            skip_confirmation=True,
            terminal=self.terminal,
            keygen_program=self.keygen_program,
        )
        logger.debug("running CA locally", fields={"ca": service.identity.public_key.fingerprint})
        return Client(LocalTransport.start(service))

    def _make_remote_client(self) -> Client:
        return Client(RemoteTransport.dial(self.remote))
