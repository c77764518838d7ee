# shasper

Building blocks for a beacon chain node, written in plain Python with no
runtime dependencies.

The package is a library. It gives you pieces a node is assembled from,
each usable and testable alone:

- **`shasper.primitives`**: fixed-size byte values (`H256`, `H384`,
  `H768`, `H32`) built on a shared `FixedHash` type, with hex parsing,
  zero values, `from_low_u64_le` and SSZ-style encoding.
- **`shasper.messages`**: the handshake and request messages exchanged
  between peers (`HelloMessage`, `GoodbyeReason`, `BeaconBlocksRequest`,
  `RecentBeaconBlocksRequest`), the RPC protocol identifiers (`RPCType`),
  requests (`RPCRequest`) and responses (`RPCResponse`), and gossip
  topics (`PubsubType`). `HelloMessage` values order by `head_slot`.
- **`shasper.codec`**: unsigned-varint length framing (`encode_varint`,
  `decode_varint`, `encode_frame`, `take_frame`) and the inbound and
  outbound RPC codecs (`InboundCodec`, `OutboundCodec`).
- **`shasper.ghost`**: LMD-GHOST fork choice (`ArchiveGhost`), with votes
  held in an overlay until committed, ancestor lookup (`ancestor_at`,
  `NoCacheAncestorQuery`) and a `ChainBackend` wrapper that adds
  `ancestor_at` to a chain store you supply.
- **`shasper.pool`**: `Attestation` and an `AttestationPool` that groups
  attestations under a key computed from their data, aggregates
  signatures with a function you supply, and lets you iterate or `pop` a
  group.
- **`shasper.netconfig`**: network settings (`NetworkConfig`,
  `GossipsubSettings`) that convert to and from plain dictionaries.
- **`shasper.rpc`**, **`shasper.rpchandler`**: the request/response
  protocol state machines (`RPC`, `RPCProtocol`, `RPCHandler`). Time is
  passed in explicitly, so they can be driven by any event loop.
- **`shasper.handler`**: answers peer queries from a chain store you
  supply (`Handler.status`, `Handler.head_request`,
  `Handler.blocks_by_depth`, `Handler.blocks_by_slot`).

## Requirements

Python 3.10 or newer.

## Examples

Fixed-size hashes:

```python
from shasper.primitives import H256

root = H256.from_low_u64_le(7)
assert H256.decode(root.encode()) == root
assert H256.zero().is_zero()
```

Handshake messages round-trip through their encoding:

```python
from shasper.messages import HelloMessage
from shasper.primitives import H256, H32

hello = HelloMessage(
    fork_version=H32.zero(),
    finalized_root=H256.zero(),
    finalized_epoch=0,
    head_root=H256.zero(),
    head_slot=12,
)
assert HelloMessage.decode(hello.encode()) == hello
```

Protocol names and gossip topics:

```python
from shasper.messages import PubsubType, RPCType

for rpc_type in RPCType.all():
    print(rpc_type.protocol_name())

topic = PubsubType.from_topic("/eth2/beacon_block/ssz")
assert topic.topic() == "/eth2/beacon_block/ssz"
```

Length-prefixed frames:

```python
from shasper.codec import encode_frame, take_frame

buffer = bytearray(encode_frame(b"payload"))
assert take_frame(buffer) == b"payload"
assert buffer == bytearray()
```

Network settings as a dictionary:

```python
from shasper.netconfig import NetworkConfig

config = NetworkConfig.from_dict({"libp2p_port": 9100})
assert config.to_dict()["libp2p_port"] == 9100
```

## What the package does not do

- It has no storage of its own. `ChainBackend`, `ArchiveGhost` and
  `Handler` work over a chain store object that you provide, offering
  methods such as `head`, `genesis`, `depth_at`, `children_at`,
  `block_at`, `state_at` and `lookup_canon_depth`.
- It opens no network connections. The RPC types queue and produce
  events; moving bytes between peers is left to the caller.
- It does not execute blocks, verify signatures or build deposit proofs,
  and it has no command-line program.

## Errors

Failures are raised as exceptions: `MessageDecodeError` and `CodecError`
for malformed input, `RPCError` (with an `RPCErrorKind`) for request
failures, and `NetworkError` for invalid network settings.