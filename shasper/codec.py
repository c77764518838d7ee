"""Length-prefixed framing and the inbound/outbound RPC codecs."""

from __future__ import annotations

import struct
from typing import Any, Iterable, Protocol

from .messages import (
    BeaconBlocksRequest,
    GoodbyeReason,
    HelloMessage,
    MessageDecodeError,
    RecentBeaconBlocksRequest,
    RPCRequest,
    RPCResponse,
    RPCResponseKind,
    RPCType,
)

MAX_FRAME_LENGTH = 128 * 1024 * 1024
_MAX_VARINT_BYTES = 10
_U64_LIMIT = 1 << 64
_U32 = struct.Struct("<I")


class CodecError(ValueError):
    """Raised when a frame or its payload cannot be encoded or decoded."""


class _BlockCodec(Protocol):
    def encode(self, block: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class _RawBlockCodec:
    """Treats blocks as their already-encoded bytes."""

    def encode(self, block: Any) -> bytes:
        return bytes(block)

    def decode(self, data: bytes) -> Any:
        return bytes(data)


def encode_varint(value: int) -> bytes:
    """Unsigned LEB128 encoding of a 64-bit integer."""
    if not 0 <= value < _U64_LIMIT:
        raise CodecError(f"varint out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes | bytearray | memoryview) -> tuple[int, int] | None:
    """Return ``(value, bytes_used)``, or ``None`` if ``data`` ends mid-varint."""
    value = 0
    for index, byte in enumerate(bytes(data[:_MAX_VARINT_BYTES])):
        value |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            if value >= _U64_LIMIT:
                raise CodecError("varint overflow")
            return value, index + 1
    if len(data) >= _MAX_VARINT_BYTES:
        raise CodecError("varint overflow")
    return None


def encode_frame(payload: bytes) -> bytes:
    """Prefix ``payload`` with its varint length."""
    if len(payload) > MAX_FRAME_LENGTH:
        raise CodecError("frame too large")
    return encode_varint(len(payload)) + bytes(payload)


def take_frame(buffer: bytearray) -> bytes | None:
    """Remove and return one whole frame's payload from ``buffer``.

    Returns ``None`` and leaves ``buffer`` untouched if no whole frame is there.
    """
    header = decode_varint(buffer)
    if header is None:
        return None
    length, used = header
    if length > MAX_FRAME_LENGTH:
        raise CodecError("frame too large")
    end = used + length
    if len(buffer) < end:
        return None
    payload = bytes(buffer[used:end])
    del buffer[:end]
    return payload


def _encode_variable_list(items: Iterable[bytes]) -> bytes:
    parts = list(items)
    offset = 4 * len(parts)
    offsets = bytearray()
    for part in parts:
        if offset >= 1 << 32:
            raise CodecError("list too large")
        offsets += _U32.pack(offset)
        offset += len(part)
    return bytes(offsets) + b"".join(parts)


class InboundCodec:
    """Reads requests and writes responses on a substream we accepted."""

    def __init__(self, typ: RPCType, block_codec: _BlockCodec | None = None) -> None:
        self.typ = typ
        self._blocks = block_codec or _RawBlockCodec()

    def encode(self, response: RPCResponse, dst: bytearray) -> None:
        if response.kind is RPCResponseKind.UNKNOWN:
            code, payload = response.code, response.payload
        elif response.kind is RPCResponseKind.HELLO:
            code, payload = 0, response.payload.encode()
        else:
            code = 0
            payload = _encode_variable_list(
                self._blocks.encode(block) for block in response.payload
            )
        frame = encode_frame(payload)
        dst.append(code)
        dst += frame

    def decode(self, src: bytearray) -> RPCRequest | None:
        payload = take_frame(src)
        if payload is None:
            return None
        decoder = {
            RPCType.HELLO: HelloMessage.decode,
            RPCType.GOODBYE: GoodbyeReason.decode,
            RPCType.BEACON_BLOCKS: BeaconBlocksRequest.decode,
            RPCType.RECENT_BEACON_BLOCKS: RecentBeaconBlocksRequest.decode,
        }[self.typ]
        try:
            return RPCRequest(decoder(payload))
        except MessageDecodeError as exc:
            raise CodecError(str(exc)) from exc


class OutboundCodec:
    """Writes requests and reads responses on a substream we opened."""

    def __init__(self, typ: RPCType, block_codec: _BlockCodec | None = None) -> None:
        self.typ = typ
        self._blocks = block_codec or _RawBlockCodec()

    def encode(self, request: RPCRequest, dst: bytearray) -> None:
        if request.typ() is not self.typ:
            raise CodecError("outbound codec invalid type")
        dst += encode_frame(request.body.encode())

    def decode(self, src: bytearray) -> RPCResponse | None:
        if not src:
            return None
        if self.typ in (RPCType.HELLO, RPCType.GOODBYE):
            code = src.pop(0)
            payload = take_frame(src)
            if payload is None:
                return None
            if self.typ is RPCType.HELLO and code == 0:
                try:
                    hello = HelloMessage.decode(payload)
                except MessageDecodeError as exc:
                    raise CodecError(str(exc)) from exc
                return RPCResponse(RPCResponseKind.HELLO, hello)
            return RPCResponse(RPCResponseKind.UNKNOWN, payload, code=code)

        kind = (
            RPCResponseKind.BEACON_BLOCKS
            if self.typ is RPCType.BEACON_BLOCKS
            else RPCResponseKind.RECENT_BEACON_BLOCKS
        )
        return RPCResponse(kind, list(self._read_blocks(src)))

    def _read_blocks(self, src: bytearray):
        while src:
            code = src.pop(0)
            if code != 0:
                return
            payload = take_frame(src)
            if payload is None:
                return
            try:
                yield self._blocks.decode(payload)
            except ValueError as exc:
                raise CodecError(str(exc)) from exc