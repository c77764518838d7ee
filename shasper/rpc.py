"""Request/response protocol events, protocol upgrades and the RPC behaviour queue."""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass
from typing import Any, Hashable, NamedTuple, Optional

from .codec import CodecError, InboundCodec, OutboundCodec
from .messages import RPCRequest, RPCType

# Seconds allowed for the first byte of a request to arrive.
TTFB_TIMEOUT = 5
# Seconds allowed for a whole request once a protocol is negotiated.
REQUEST_TIMEOUT = 15

RequestId = int


class RPCErrorKind(enum.Enum):
    CODEC = "codec"
    STREAM_TIMEOUT = "stream_timeout"
    CUSTOM = "custom"


class RPCError(Exception):
    """Failure of an RPC exchange."""

    def __init__(self, kind: RPCErrorKind, message: str = "") -> None:
        super().__init__(kind, message)
        self.kind = kind
        self.message = message

    @classmethod
    def _from_timeout(cls, elapsed: bool) -> "RPCError":
        if elapsed:
            return cls(RPCErrorKind.STREAM_TIMEOUT)
        return cls(RPCErrorKind.CUSTOM, "Stream timer failed")

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind.name}: {self.message}"
        return self.kind.name

    def __repr__(self) -> str:
        return f"RPCError({self.kind!r}, {self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RPCError):
            return NotImplemented
        return (self.kind, self.message) == (other.kind, other.message)

    def __hash__(self) -> int:
        return hash((self.kind, self.message))


@dataclass(frozen=True)
class RPCEvent:
    """A request, a response or an error, tagged with its request id."""

    kind: str
    request_id: RequestId
    payload: Any

    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"

    def __post_init__(self) -> None:
        if self.kind not in (self.REQUEST, self.RESPONSE, self.ERROR):
            raise ValueError(f"unknown RPC event kind: {self.kind!r}")
        if isinstance(self.request_id, bool) or not isinstance(self.request_id, int):
            raise TypeError("request id must be an integer")
        if self.request_id < 0:
            raise ValueError("request id must not be negative")

    @classmethod
    def request(cls, request_id: RequestId, request: Any) -> "RPCEvent":
        return cls(cls.REQUEST, request_id, request)

    @classmethod
    def response(cls, request_id: RequestId, response: Any) -> "RPCEvent":
        return cls(cls.RESPONSE, request_id, response)

    @classmethod
    def error(cls, request_id: RequestId, error: RPCError) -> "RPCEvent":
        return cls(cls.ERROR, request_id, error)


@dataclass(frozen=True)
class RPCMessage:
    """What the RPC behaviour reports upwards."""

    kind: str
    peer_id: Hashable
    event: Optional[RPCEvent] = None

    EVENT = "event"
    PEER_DIALED = "peer_dialed"
    PEER_DISCONNECTED = "peer_disconnected"

    def __post_init__(self) -> None:
        if self.kind not in (self.EVENT, self.PEER_DIALED, self.PEER_DISCONNECTED):
            raise ValueError(f"unknown RPC message kind: {self.kind!r}")
        if (self.kind == self.EVENT) != (self.event is not None):
            raise ValueError("only event messages carry an event")


class _Action(NamedTuple):
    """A queued behaviour action: send an event to a peer, or report a message."""

    kind: str
    peer_id: Hashable = None
    event: Optional[RPCEvent] = None
    message: Optional[RPCMessage] = None


SEND = "send"
GENERATE = "generate"


class RPCProtocol:
    """Protocol selection, codecs and substream upgrades for beacon RPC."""

    def __init__(self, block_codec: Any = None) -> None:
        self._block_codec = block_codec

    def inbound_protocols(self) -> list[RPCType]:
        return RPCType.all()

    def outbound_protocols(self, request: RPCRequest) -> list[RPCType]:
        return [request.typ()]

    def inbound_codec(self, protocol: RPCType) -> InboundCodec:
        return InboundCodec(protocol, self._block_codec)

    def outbound_codec(self, protocol: RPCType) -> OutboundCodec:
        return OutboundCodec(protocol, self._block_codec)

    def read_inbound_request(
        self, protocol: RPCType, data: bytes | bytearray
    ) -> tuple[RPCRequest, bytes]:
        """Read the first request from an inbound substream's bytes.

        Returns the request and the bytes left after it.
        """
        buffer = bytearray(data)
        try:
            request = self.inbound_codec(protocol).decode(buffer)
        except CodecError as exc:
            raise RPCError._from_timeout(elapsed=False) from exc
        if request is None:
            raise RPCError(RPCErrorKind.CUSTOM, "Stream terminated early")
        return request, bytes(buffer)

    def write_outbound_request(self, request: RPCRequest) -> bytes:
        """The bytes that open an outbound substream carrying ``request``."""
        dst = bytearray()
        try:
            self.outbound_codec(request.typ()).encode(request, dst)
        except CodecError as exc:
            raise RPCError(RPCErrorKind.CODEC, "outbound upgrade codec error") from exc
        return bytes(dst)


class RPC:
    """Queue of pending RPC actions, drained in order by ``poll``."""

    def __init__(self) -> None:
        self._events: deque[_Action] = deque()

    def send_rpc(self, peer_id: Hashable, event: RPCEvent) -> None:
        """Queue an event for a connected peer."""
        self._events.append(_Action(SEND, peer_id=peer_id, event=event))

    def inject_connected(self, peer_id: Hashable) -> None:
        self._generate(RPCMessage(RPCMessage.PEER_DIALED, peer_id))

    def inject_disconnected(self, peer_id: Hashable) -> None:
        self._generate(RPCMessage(RPCMessage.PEER_DISCONNECTED, peer_id))

    def inject_node_event(self, source: Hashable, event: RPCEvent) -> None:
        self._generate(RPCMessage(RPCMessage.EVENT, source, event))

    def _generate(self, message: RPCMessage) -> None:
        self._events.append(_Action(GENERATE, message=message))

    def poll(self) -> Optional[_Action]:
        """The oldest queued action, or ``None`` when nothing is pending."""
        return self._events.popleft() if self._events else None

    def addresses_of_peer(self, peer_id: Hashable) -> list:
        return []