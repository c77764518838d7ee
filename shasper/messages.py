"""Wire messages exchanged between beacon nodes over RPC and gossip."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Any, Iterable, Union

from .primitives import H32, H256

_U64 = struct.Struct("<Q")
_U32 = struct.Struct("<I")


class MessageDecodeError(ValueError):
    """Raised when bytes do not form a valid message."""


def _u64(value: int) -> bytes:
    try:
        return _U64.pack(value)
    except struct.error as exc:
        raise ValueError(f"value out of u64 range: {value}") from exc


def _read_u64(data: bytes, offset: int) -> int:
    return _U64.unpack_from(data, offset)[0]


def _exact(data: bytes | bytearray | memoryview, size: int, name: str) -> bytes:
    raw = bytes(data)
    if len(raw) != size:
        raise MessageDecodeError(f"{name} needs {size} bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class HelloMessage:
    """Status handshake; messages order by ``head_slot`` alone."""

    fork_version: H32
    finalized_root: H256
    finalized_epoch: int
    head_root: H256
    head_slot: int

    _SIZE = 4 + 32 + 8 + 32 + 8

    def encode(self) -> bytes:
        return b"".join(
            (
                self.fork_version.encode(),
                self.finalized_root.encode(),
                _u64(self.finalized_epoch),
                self.head_root.encode(),
                _u64(self.head_slot),
            )
        )

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> "HelloMessage":
        raw = _exact(data, cls._SIZE, "HelloMessage")
        return cls(
            fork_version=H32(raw[0:4]),
            finalized_root=H256(raw[4:36]),
            finalized_epoch=_read_u64(raw, 36),
            head_root=H256(raw[44:76]),
            head_slot=_read_u64(raw, 76),
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, HelloMessage):
            return NotImplemented
        return self.head_slot < other.head_slot

    def __le__(self, other: object) -> bool:
        if not isinstance(other, HelloMessage):
            return NotImplemented
        return self.head_slot <= other.head_slot

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, HelloMessage):
            return NotImplemented
        return self.head_slot > other.head_slot

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, HelloMessage):
            return NotImplemented
        return self.head_slot >= other.head_slot


class GoodbyeReason(enum.IntEnum):
    """Reason given in a goodbye message; unknown codes map to ``UNKNOWN``."""

    UNKNOWN = 0
    CLIENT_SHUTDOWN = 1
    IRRELEVANT_NETWORK = 2
    FAULT = 3

    @classmethod
    def from_int(cls, value: int) -> "GoodbyeReason":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    def encode(self) -> bytes:
        return _u64(int(self))

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> "GoodbyeReason":
        raw = _exact(data, 8, "GoodbyeReason")
        return cls.from_int(_read_u64(raw, 0))


@dataclass(frozen=True)
class BeaconBlocksRequest:
    """Request for a range of blocks on the chain ending at ``head_block_root``."""

    head_block_root: H256
    start_slot: int
    count: int
    step: int

    _SIZE = 32 + 8 + 8 + 8

    def encode(self) -> bytes:
        return b"".join(
            (
                self.head_block_root.encode(),
                _u64(self.start_slot),
                _u64(self.count),
                _u64(self.step),
            )
        )

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> "BeaconBlocksRequest":
        raw = _exact(data, cls._SIZE, "BeaconBlocksRequest")
        return cls(
            head_block_root=H256(raw[0:32]),
            start_slot=_read_u64(raw, 32),
            count=_read_u64(raw, 40),
            step=_read_u64(raw, 48),
        )


@dataclass(frozen=True)
class RecentBeaconBlocksRequest:
    """Request for blocks by their roots."""

    block_roots: tuple[H256, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "block_roots", tuple(self.block_roots))

    def encode(self) -> bytes:
        body = b"".join(root.encode() for root in self.block_roots)
        return _U32.pack(4) + body

    @classmethod
    def decode(
        cls, data: bytes | bytearray | memoryview
    ) -> "RecentBeaconBlocksRequest":
        raw = bytes(data)
        if len(raw) < 4:
            raise MessageDecodeError("RecentBeaconBlocksRequest is too short")
        offset = _U32.unpack_from(raw, 0)[0]
        if offset != 4:
            raise MessageDecodeError(f"unexpected field offset {offset}")
        body = raw[4:]
        if len(body) % H256.SIZE:
            raise MessageDecodeError("block roots are not a whole number of hashes")
        return cls(
            tuple(
                H256(body[start : start + H256.SIZE])
                for start in range(0, len(body), H256.SIZE)
            )
        )


class RPCType(enum.IntEnum):
    """RPC protocol kinds."""

    HELLO = 0
    GOODBYE = 1
    BEACON_BLOCKS = 2
    RECENT_BEACON_BLOCKS = 3

    @classmethod
    def all(cls) -> list["RPCType"]:
        return [cls.HELLO, cls.GOODBYE, cls.BEACON_BLOCKS, cls.RECENT_BEACON_BLOCKS]

    def protocol_name(self) -> bytes:
        return _PROTOCOL_NAMES[self]


_PROTOCOL_NAMES = {
    RPCType.HELLO: b"/eth2/beacon_chain/req/status/1/ssz",
    RPCType.GOODBYE: b"/eth2/beacon_chain/req/goodbye/1/ssz",
    RPCType.BEACON_BLOCKS: b"/eth2/beacon_chain/req/beacon_blocks_by_range/1/ssz",
    RPCType.RECENT_BEACON_BLOCKS: b"/eth2/beacon_chain/req/beacon_blocks_by_root/1/ssz",
}

_REQUEST_TYPES: dict[type, RPCType] = {
    HelloMessage: RPCType.HELLO,
    GoodbyeReason: RPCType.GOODBYE,
    BeaconBlocksRequest: RPCType.BEACON_BLOCKS,
    RecentBeaconBlocksRequest: RPCType.RECENT_BEACON_BLOCKS,
}

RequestBody = Union[
    HelloMessage, GoodbyeReason, BeaconBlocksRequest, RecentBeaconBlocksRequest
]


@dataclass(frozen=True)
class RPCRequest:
    """An RPC request; its type follows from the body it carries."""

    body: RequestBody

    def __post_init__(self) -> None:
        if type(self.body) not in _REQUEST_TYPES:
            raise TypeError(f"not an RPC request body: {type(self.body).__name__}")

    def typ(self) -> RPCType:
        return _REQUEST_TYPES[type(self.body)]

    def is_goodbye(self) -> bool:
        return self.typ() is RPCType.GOODBYE

    def expect_response(self) -> bool:
        return not self.is_goodbye()


class RPCResponseKind(enum.Enum):
    HELLO = "hello"
    BEACON_BLOCKS = "beacon_blocks"
    RECENT_BEACON_BLOCKS = "recent_beacon_blocks"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RPCResponse:
    """An RPC response.

    ``payload`` is a ``HelloMessage`` for hello, a tuple of blocks for the two
    block kinds, and raw bytes for ``UNKNOWN``, where ``code`` holds the
    response code byte.
    """

    kind: RPCResponseKind
    payload: Any
    code: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.code <= 0xFF:
            raise ValueError(f"response code must fit in a byte: {self.code}")
        if self.kind in (RPCResponseKind.BEACON_BLOCKS, RPCResponseKind.RECENT_BEACON_BLOCKS):
            object.__setattr__(self, "payload", tuple(self.payload))
        elif self.kind is RPCResponseKind.UNKNOWN:
            object.__setattr__(self, "payload", bytes(self.payload))
        elif not isinstance(self.payload, HelloMessage):
            raise TypeError("a hello response carries a HelloMessage")


class PubsubType(enum.Enum):
    """Gossip topics, valued by their topic strings."""

    BLOCK = "/eth2/beacon_block/ssz"
    ATTESTATION = "/eth2/beacon_attestation/ssz"
    VOLUNTARY_EXIT = "/eth2/voluntary_exit/ssz"
    PROPOSER_SLASHING = "/eth2/proposer_slashing/ssz"
    ATTESTER_SLASHING = "/eth2/attester_slashing/ssz"

    @classmethod
    def from_topic(cls, topic: str) -> "PubsubType | None":
        try:
            return cls(topic)
        except ValueError:
            return None

    def topic(self) -> str:
        return self.value


def _roots(values: Iterable[H256]) -> tuple[H256, ...]:
    return tuple(values)