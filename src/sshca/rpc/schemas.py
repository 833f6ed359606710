"""Pydantic models for the CA remote-call protocol.

Messages are newline-delimited JSON envelopes. Byte fields (keys and
certificates) are base64 encoded on the wire.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sshca.core.keys import CertificateType

SERVICE_NAME = "CA"
GET_CA_PUBLIC_KEY = f"{SERVICE_NAME}.GetCAPublicKey"
SIGN_PUBLIC_KEY = f"{SERVICE_NAME}.SignPublicKey"

# Upper bound for one encoded message, including the newline.
MAX_MESSAGE_SIZE = 1024 * 1024


class WireModel(BaseModel):
    """Base for everything that crosses the connection."""

    model_config = ConfigDict(
        extra="forbid",
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )


# -----------------------------------------------------------------------------
# Method Arguments and Replies
# -----------------------------------------------------------------------------


class GetCAPublicKeyArgs(WireModel):
    """GetCAPublicKey takes no arguments."""


class PublicKeyReply(WireModel):
    """Reply to GetCAPublicKey."""

    ca_public_key: bytes


class SignArgs(WireModel):
    """Arguments to SignPublicKey."""

    identity: str = Field(description="Certificate key ID (ssh-keygen -I)")
    certificate_type: CertificateType
    principals: list[str] = Field(description="Principals, in order")
    public_key: bytes = Field(description="authorized_keys line of the key to sign")


class SignReply(WireModel):
    """Reply to SignPublicKey."""

    certificate: bytes


A = TypeVar("A", bound=WireModel)


# -----------------------------------------------------------------------------
# Envelopes
# -----------------------------------------------------------------------------


class RPCRequest(WireModel):
    """
    A call on the connection.

    ``params`` stays a plain JSON object; the server validates it for the
    called method with :meth:`parse_params`.
    """

    id: int
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def dump_args(cls, v: Any) -> Any:
        if isinstance(v, WireModel):
            return v.model_dump(mode="json")
        return v

    def parse_params(self, args_type: type[A]) -> A:
        """
        Validate ``params`` as the arguments of a method.

        Raises:
            ValidationError: If the arguments do not match ``args_type``
        """
        # Bytes fields are only base64 decoded when validating JSON.
        return args_type.model_validate_json(json.dumps(self.params))


class RPCResponse(WireModel):
    """The reply to the request with the same ``id``."""

    id: int
    result: SignReply | PublicKeyReply | None = None
    error: str | None = None


def encode(message: WireModel) -> bytes:
    """Serialize a message to one line of JSON."""
    return message.model_dump_json().encode("utf-8") + b"\n"
