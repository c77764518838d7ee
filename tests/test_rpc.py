import pytest

from shasper.codec import InboundCodec, OutboundCodec, encode_frame
from shasper.messages import (
    BeaconBlocksRequest,
    GoodbyeReason,
    HelloMessage,
    RPCRequest,
    RPCType,
)
from shasper.primitives import H32, H256
from shasper.rpc import (
    GENERATE,
    RPC,
    SEND,
    RPCError,
    RPCErrorKind,
    RPCEvent,
    RPCMessage,
    RPCProtocol,
)


def _hello():
    return HelloMessage(
        fork_version=H32.zero(),
        finalized_root=H256.zero(),
        finalized_epoch=0,
        head_root=H256.from_low_u64_le(1),
        head_slot=5,
    )


def test_event_constructors_keep_id_and_payload():
    request = RPCRequest(_hello())
    event = RPCEvent.request(7, request)
    assert event.kind == RPCEvent.REQUEST
    assert event.request_id == 7
    assert event.payload == request
    error = RPCError(RPCErrorKind.STREAM_TIMEOUT)
    assert RPCEvent.error(3, error).payload == error
    assert RPCEvent.response(4, "blocks").kind == RPCEvent.RESPONSE


def test_event_rejects_negative_id():
    with pytest.raises(ValueError):
        RPCEvent.request(-1, RPCRequest(_hello()))


def test_rpc_error_equality():
    assert RPCError(RPCErrorKind.CODEC, "x") == RPCError(RPCErrorKind.CODEC, "x")
    assert not RPCError(RPCErrorKind.CODEC, "x") == RPCError(RPCErrorKind.CUSTOM, "x")


def test_message_event_requires_event():
    with pytest.raises(ValueError):
        RPCMessage(RPCMessage.EVENT, "peer")


def test_protocol_lists():
    protocol = RPCProtocol()
    assert protocol.inbound_protocols() == RPCType.all()
    goodbye = RPCRequest(GoodbyeReason.FAULT)
    assert protocol.outbound_protocols(goodbye) == [RPCType.GOODBYE]


def test_codecs_follow_protocol():
    protocol = RPCProtocol()
    inbound = protocol.inbound_codec(RPCType.BEACON_BLOCKS)
    outbound = protocol.outbound_codec(RPCType.HELLO)
    assert isinstance(inbound, InboundCodec) and inbound.typ is RPCType.BEACON_BLOCKS
    assert isinstance(outbound, OutboundCodec) and outbound.typ is RPCType.HELLO


def test_outbound_request_is_one_frame():
    hello = _hello()
    data = RPCProtocol().write_outbound_request(RPCRequest(hello))
    assert data == encode_frame(hello.encode())


def test_outbound_then_inbound_round_trip():
    protocol = RPCProtocol()
    request = RPCRequest(
        BeaconBlocksRequest(H256.from_low_u64_le(2), start_slot=3, count=50, step=1)
    )
    data = protocol.write_outbound_request(request)
    decoded, rest = protocol.read_inbound_request(RPCType.BEACON_BLOCKS, data)
    assert decoded == request
    assert rest == b""


def test_inbound_leaves_remaining_bytes():
    protocol = RPCProtocol()
    first = protocol.write_outbound_request(RPCRequest(_hello()))
    second = protocol.write_outbound_request(RPCRequest(_hello()))
    decoded, rest = protocol.read_inbound_request(RPCType.HELLO, first + second)
    assert decoded == RPCRequest(_hello())
    assert rest == second


@pytest.mark.parametrize("data", [b"", b"\x54", b"\x54\x00\x00"])
def test_inbound_terminated_early(data):
    with pytest.raises(RPCError) as info:
        RPCProtocol().read_inbound_request(RPCType.HELLO, data)
    assert info.value == RPCError(RPCErrorKind.CUSTOM, "Stream terminated early")


def test_inbound_undecodable_payload():
    data = encode_frame(b"\x01\x02")
    with pytest.raises(RPCError) as info:
        RPCProtocol().read_inbound_request(RPCType.HELLO, data)
    assert info.value.kind is RPCErrorKind.CUSTOM


def test_rpc_poll_empty():
    assert RPC().poll() is None


def test_rpc_send_then_poll():
    rpc = RPC()
    event = RPCEvent.request(0, RPCRequest(_hello()))
    rpc.send_rpc("peer-a", event)
    action = rpc.poll()
    assert action.kind == SEND
    assert action.peer_id == "peer-a"
    assert action.event == event
    assert rpc.poll() is None


def test_rpc_events_come_out_in_order():
    rpc = RPC()
    event = RPCEvent.response(1, "payload")
    rpc.inject_connected("peer-a")
    rpc.inject_node_event("peer-b", event)
    rpc.inject_disconnected("peer-a")
    actions = [rpc.poll(), rpc.poll(), rpc.poll()]
    assert all(action.kind == GENERATE for action in actions)
    assert [action.message for action in actions] == [
        RPCMessage(RPCMessage.PEER_DIALED, "peer-a"),
        RPCMessage(RPCMessage.EVENT, "peer-b", event),
        RPCMessage(RPCMessage.PEER_DISCONNECTED, "peer-a"),
    ]
    assert rpc.poll() is None


def test_rpc_knows_no_peer_addresses():
    assert RPC().addresses_of_peer("peer-a") == []