"""Serving a CAService over a stream socket."""

from __future__ import annotations

import socket
import threading
from collections.abc import Callable

from pydantic import ValidationError

from sshca.core.ca import CAService
from sshca.core.exceptions import ConfirmationAborted, InvalidKeyFormat, SigningError
from sshca.core.keys import PublicKey
from sshca.core.signing import SIGNING_FAILED_MESSAGE, SignRequest
from sshca.logging import get_logger
from sshca.metrics import record_rpc_call
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

logger = get_logger(__name__)

Handler = Callable[[WireModel, str], WireModel]


class RPCServer:
    """
    Dispatches remote calls to a CAService.

    Each connection is served on its own thread; requests on one connection
    are handled in order.
    """

    def __init__(self, service: CAService):
        self.service = service
        self._handlers: dict[str, tuple[type[WireModel], Handler]] = {
            GET_CA_PUBLIC_KEY: (GetCAPublicKeyArgs, self._get_ca_public_key),
            SIGN_PUBLIC_KEY: (SignArgs, self._sign_public_key),
        }

    def dispatch(self, request: RPCRequest, peer: str = "local") -> RPCResponse:
        """Run one call and turn its outcome into a response."""
        entry = self._handlers.get(request.method)
        if entry is None:
            record_rpc_call(request.method, success=False)
            return RPCResponse(id=request.id, error=f"unknown method {request.method!r}")

        args_type, handler = entry
        try:
            args = request.parse_params(args_type)
        except ValidationError as e:
            logger.info("invalid arguments for %s from %s: %s", request.method, peer, e)
            record_rpc_call(request.method, success=False)
            return RPCResponse(id=request.id, error=f"invalid arguments for {request.method}")

        try:
            result = handler(args, peer)
        except InvalidKeyFormat as e:
            error = f"invalid public key: {e}"
        except ConfirmationAborted as e:
            error = f"failed to confirm request: {e}"
        except SigningError as e:
            logger.warning(
                "signing failed for %s: %s", peer, e, fields={"returncode": e.returncode}
            )
            error = SIGNING_FAILED_MESSAGE
        except Exception:
            logger.exception("unexpected error handling %s from %s", request.method, peer)
            error = "internal server error"
        else:
            record_rpc_call(request.method, success=True)
            return RPCResponse(id=request.id, result=result)

        record_rpc_call(request.method, success=False)
        return RPCResponse(id=request.id, error=error)

    def _get_ca_public_key(self, args: GetCAPublicKeyArgs, peer: str) -> PublicKeyReply:
        return PublicKeyReply(ca_public_key=self.service.get_ca_public_key().serialize())

    def _sign_public_key(self, args: SignArgs, peer: str) -> SignReply:
        request = SignRequest(
            identity=args.identity,
            certificate_type=args.certificate_type,
            principals=list(args.principals),
            public_key=PublicKey(args.public_key),
        )
        result = self.service.sign_public_key(request, actor=peer)
        return SignReply(certificate=result.certificate)

    def serve_connection(self, conn: socket.socket, peer: str = "local") -> None:
        """Answer requests on ``conn`` until the peer closes it."""
        log = logger.with_context(peer=peer)
        log.debug("connection opened")
        try:
            with conn, conn.makefile("rb") as rfile, conn.makefile("wb") as wfile:
                while True:
                    line = rfile.readline(MAX_MESSAGE_SIZE + 1)
                    if not line:
                        break
                    if not line.endswith(b"\n"):
                        log.warning("dropping connection: message too large")
                        break
                    try:
                        request = RPCRequest.model_validate_json(line)
                    except ValidationError as e:
                        log.warning("dropping connection: malformed request: %s", e)
                        break
                    response = self.dispatch(request, peer)
                    wfile.write(encode(response))
                    wfile.flush()
        except OSError as e:
            log.info("connection lost: %s", e)
        log.debug("connection closed")

    def serve_forever(self, listener: socket.socket) -> None:
        """Accept connections on ``listener`` until it is closed."""
        while True:
            try:
                conn, addr = listener.accept()
            except OSError:
                if listener.fileno() == -1:
                    return
                raise
            peer = f"{addr[0]}:{addr[1]}"
            threading.Thread(
                target=self.serve_connection,
                args=(conn, peer),
                name=f"sshca-conn-{peer}",
                daemon=True,
            ).start()


def listen(address: str) -> socket.socket:
    """Bind a TCP listener on ``host:port``."""
    host, port = parse_address(address)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return socket.create_server((host, port), family=family)


def serve(service: CAService, address: str) -> None:
    """Serve ``service`` on a TCP address. Blocks for the life of the process."""
    with listen(address) as listener:
        logger.info("listening on %s", address, fields={"ca": service.identity.public_key.fingerprint})
        RPCServer(service).serve_forever(listener)
