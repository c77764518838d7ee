"""Network configuration and the error raised by the networking layer."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

VERSION = "v0.1"

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_U16_LIMIT = 1 << 16


class NetworkError(Exception):
    """Raised when the network layer cannot be configured or started."""


@dataclass(frozen=True)
class GossipsubSettings:
    """Parameters of the gossip pub-sub protocol."""

    max_transmit_size: int = 1_048_576
    heartbeat_interval: float = 20.0

    def __post_init__(self) -> None:
        if self.max_transmit_size <= 0:
            raise ValueError("max_transmit_size must be positive")
        if self.heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")


def _localhost() -> IPAddress:
    return ipaddress.ip_address("127.0.0.1")


def _address(name: str, value: Any) -> IPAddress:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    try:
        return ipaddress.ip_address(value)
    except ValueError as exc:
        raise NetworkError(f"invalid {name}: {value!r}") from exc


def _port(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise NetworkError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value < _U16_LIMIT:
        raise NetworkError(f"{name} out of range: {value}")
    return value


def _strings(name: str, value: Any) -> list[str]:
    if isinstance(value, (str, bytes)):
        raise NetworkError(f"{name} must be a list of strings")
    try:
        items = list(value)
    except TypeError as exc:
        raise NetworkError(f"{name} must be a list of strings") from exc
    if not all(isinstance(item, str) for item in items):
        raise NetworkError(f"{name} must be a list of strings")
    return items


@dataclass
class NetworkConfig:
    """Settings for the peer-to-peer service.

    ``boot_nodes`` holds node records and ``libp2p_nodes`` multiaddresses, both
    as their text form. The gossip settings are not part of the serialized form.
    """

    listen_address: IPAddress = field(default_factory=_localhost)
    libp2p_port: int = 9000
    discovery_address: IPAddress = field(default_factory=_localhost)
    discovery_port: int = 9000
    max_peers: int = 10
    gs_config: GossipsubSettings = field(default_factory=GossipsubSettings)
    boot_nodes: list[str] = field(default_factory=list)
    libp2p_nodes: list[str] = field(default_factory=list)
    client_version: str = VERSION
    topics: list[str] = field(default_factory=list)

    _SERIALIZED = (
        "listen_address",
        "libp2p_port",
        "discovery_address",
        "discovery_port",
        "max_peers",
        "boot_nodes",
        "libp2p_nodes",
        "client_version",
        "topics",
    )

    def __post_init__(self) -> None:
        self.listen_address = _address("listen_address", self.listen_address)
        self.discovery_address = _address("discovery_address", self.discovery_address)
        self.libp2p_port = _port("libp2p_port", self.libp2p_port)
        self.discovery_port = _port("discovery_port", self.discovery_port)
        if (
            isinstance(self.max_peers, bool)
            or not isinstance(self.max_peers, int)
            or self.max_peers < 0
        ):
            raise NetworkError(f"max_peers must be a non-negative integer: {self.max_peers!r}")
        if not isinstance(self.client_version, str):
            raise NetworkError("client_version must be a string")
        if not isinstance(self.gs_config, GossipsubSettings):
            raise NetworkError("gs_config must be GossipsubSettings")
        self.boot_nodes = _strings("boot_nodes", self.boot_nodes)
        self.libp2p_nodes = _strings("libp2p_nodes", self.libp2p_nodes)
        self.topics = _strings("topics", self.topics)

    def to_dict(self) -> dict[str, Any]:
        """Plain serializable form; gossip settings are left out."""
        return {
            "listen_address": str(self.listen_address),
            "libp2p_port": self.libp2p_port,
            "discovery_address": str(self.discovery_address),
            "discovery_port": self.discovery_port,
            "max_peers": self.max_peers,
            "boot_nodes": list(self.boot_nodes),
            "libp2p_nodes": list(self.libp2p_nodes),
            "client_version": self.client_version,
            "topics": list(self.topics),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkConfig":
        """Build from a mapping; missing fields take defaults, unknown ones are ignored."""
        if not isinstance(data, Mapping):
            raise NetworkError("network configuration must be a mapping")
        return cls(**{name: data[name] for name in cls._SERIALIZED if name in data})