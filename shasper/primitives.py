"""Fixed-size hash types and integer aliases used by the beacon chain."""

from __future__ import annotations

from typing import ClassVar, Iterator, TypeVar

_T = TypeVar("_T", bound="FixedHash")

_U64_LIMIT = 1 << 64


class FixedHash:
    """An immutable byte string of a fixed length given by ``SIZE``."""

    SIZE: ClassVar[int] = 0
    __slots__ = ("_data",)

    def __init__(self, data: bytes | bytearray | memoryview | None = None) -> None:
        raw = bytes(self.SIZE) if data is None else bytes(data)
        if len(raw) != self.SIZE:
            raise ValueError(
                f"{type(self).__name__} needs {self.SIZE} bytes, got {len(raw)}"
            )
        self._data = raw

    @classmethod
    def zero(cls: type[_T]) -> _T:
        """The all-zero value."""
        return cls()

    @classmethod
    def from_slice(cls: type[_T], data: bytes | bytearray | memoryview) -> _T:
        """Build from bytes of exactly ``SIZE`` length."""
        return cls(data)

    @classmethod
    def from_hex(cls: type[_T], text: str) -> _T:
        """Build from a hex string, with or without a ``0x`` prefix."""
        digits = text[2:] if text.startswith(("0x", "0X")) else text
        try:
            raw = bytes.fromhex(digits)
        except ValueError as exc:
            raise ValueError(f"invalid hex for {cls.__name__}: {text!r}") from exc
        return cls(raw)

    @classmethod
    def from_low_u64_le(cls: type[_T], value: int) -> _T:
        """Place a 64-bit integer, little endian, in the low bytes."""
        if not 0 <= value < _U64_LIMIT:
            raise ValueError(f"value out of u64 range: {value}")
        low = value.to_bytes(8, "little")[: cls.SIZE]
        return cls(low + bytes(cls.SIZE - len(low)))

    def encode(self) -> bytes:
        """SSZ encoding: the raw bytes."""
        return self._data

    @classmethod
    def decode(cls: type[_T], data: bytes | bytearray | memoryview) -> _T:
        """Decode the SSZ encoding; the length must match exactly."""
        return cls(data)

    def to_h256(self) -> "H256":
        """The first 32 bytes as an ``H256``."""
        if self.SIZE < H256.SIZE:
            raise ValueError(f"{type(self).__name__} is shorter than 32 bytes")
        return H256(self._data[: H256.SIZE])

    def is_zero(self) -> bool:
        return not any(self._data)

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return self.SIZE

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __getitem__(self, index):
        return self._data[index]

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._data == other._data

    def __lt__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._data < other._data

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._data))

    def __str__(self) -> str:
        return "0x" + self._data.hex()

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self}')"


class H256(FixedHash):
    """32-byte hash."""

    SIZE = 32
    __slots__ = ()


class H384(FixedHash):
    """48-byte value, used for validator public keys."""

    SIZE = 48
    __slots__ = ()


class H768(FixedHash):
    """96-byte value, used for signatures."""

    SIZE = 96
    __slots__ = ()


class H32(FixedHash):
    """4-byte value, used for fork versions."""

    SIZE = 4
    __slots__ = ()


ValidatorId = H384
Signature = H768
Version = H32

Uint = int
Epoch = int
Slot = int
ValidatorIndex = int
Shard = int
Gwei = int