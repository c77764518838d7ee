import pytest

from shasper.messages import (
    GoodbyeReason,
    HelloMessage,
    RPCRequest,
    RPCResponse,
    RPCResponseKind,
    RPCType,
)
from shasper.primitives import H32, H256
from shasper.rpc import RPCError, RPCErrorKind, RPCEvent
from shasper.rpchandler import (
    PENDING,
    RESPONSE_TIMEOUT,
    HandlerEvent,
    KeepAlive,
    RPCHandler,
)


def _hello(slot=0):
    return HelloMessage(H32.zero(), H256.zero(), 0, H256.zero(), slot)


class FakeSend:
    def __init__(self, results):
        self.results = list(results)

    def poll(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeInbound:
    def __init__(self, results=(True,)):
        self.sent = []
        self.results = results

    def send(self, response):
        self.sent.append(response)
        return FakeSend(self.results)


class FakeOutbound:
    def __init__(self, results):
        self.results = list(results)

    def poll(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _open_outbound(handler, event, substream, now=0.0):
    handler.send_request(event)
    opened = handler.poll(now)
    assert opened.kind == HandlerEvent.OUTBOUND_SUBSTREAM_REQUEST
    handler.inject_fully_negotiated_outbound(substream, opened.event, now)


def test_send_request_asks_for_substream():
    handler = RPCHandler()
    request = RPCRequest(_hello())
    event = RPCEvent.request(0, request)
    handler.send_request(event)
    assert handler.pending_requests() == 1
    out = handler.poll(0.0)
    assert out.kind == HandlerEvent.OUTBOUND_SUBSTREAM_REQUEST
    assert out.event == event
    assert out.protocols == (RPCType.HELLO,)
    assert handler.pending_requests() == 1
    assert handler.poll(0.0) is None


def test_dial_limit():
    handler = RPCHandler()
    for _ in range(handler.max_dial_negotiated + 1):
        handler.send_request(RPCEvent.request(0, RPCRequest(_hello())))
    opened = []
    while (out := handler.poll(0.0)) is not None:
        opened.append(out)
    assert len(opened) == handler.max_dial_negotiated
    assert handler.pending_requests() == handler.max_dial_negotiated + 1


def test_inbound_goodbye_reported_with_zero_id():
    handler = RPCHandler()
    request = RPCRequest(GoodbyeReason.CLIENT_SHUTDOWN)
    substream = FakeInbound()
    handler.inject_fully_negotiated_inbound(request, substream, 0.0)
    out = handler.poll(0.0)
    assert out == HandlerEvent.custom(RPCEvent.request(0, request))
    handler.inject_event(RPCEvent.response(0, RPCResponse(RPCResponseKind.HELLO, _hello())))
    assert substream.sent == []


def test_inbound_requests_get_sequential_ids():
    handler = RPCHandler()
    first, second = RPCRequest(_hello(1)), RPCRequest(_hello(2))
    handler.inject_fully_negotiated_inbound(first, FakeInbound(), 0.0)
    handler.inject_fully_negotiated_inbound(second, FakeInbound(), 0.0)
    assert handler.poll(0.0).event == RPCEvent.request(1, first)
    assert handler.poll(0.0).event == RPCEvent.request(2, second)


def test_response_sent_on_waiting_substream():
    handler = RPCHandler()
    substream = FakeInbound(results=(False, True))
    handler.inject_fully_negotiated_inbound(RPCRequest(_hello()), substream, 0.0)
    request_id = handler.poll(0.0).event.request_id
    response = RPCResponse(RPCResponseKind.HELLO, _hello(7))
    handler.inject_event(RPCEvent.response(request_id, response))
    assert substream.sent == [response]
    assert handler.poll(0.0) is None
    assert handler.poll(0.0) is None
    handler.inject_event(RPCEvent.response(request_id, response))
    assert substream.sent == [response]


def test_response_to_expired_substream_is_dropped():
    handler = RPCHandler()
    substream = FakeInbound()
    handler.inject_fully_negotiated_inbound(RPCRequest(_hello()), substream, 0.0)
    request_id = handler.poll(0.0).event.request_id
    assert handler.poll(RESPONSE_TIMEOUT + 1.0) is None
    handler.inject_event(
        RPCEvent.response(request_id, RPCResponse(RPCResponseKind.HELLO, _hello()))
    )
    assert substream.sent == []


def test_send_failure_reports_codec_error():
    handler = RPCHandler()
    substream = FakeInbound(results=(ValueError("broken"),))
    handler.inject_fully_negotiated_inbound(RPCRequest(_hello()), substream, 0.0)
    request_id = handler.poll(0.0).event.request_id
    handler.inject_event(
        RPCEvent.response(request_id, RPCResponse(RPCResponseKind.HELLO, _hello()))
    )
    out = handler.poll(0.0)
    assert out.event == RPCEvent.error(0, RPCError(RPCErrorKind.CODEC, "send codec error"))


def test_outbound_response_delivered():
    handler = RPCHandler()
    response = RPCResponse(RPCResponseKind.HELLO, _hello(3))
    event = RPCEvent.request(5, RPCRequest(_hello()))
    _open_outbound(handler, event, FakeOutbound([PENDING, response]))
    assert handler.poll(1.0) is None
    assert handler.poll(2.0) == HandlerEvent.custom(RPCEvent.response(5, response))
    assert handler.poll(3.0) is None


def test_outbound_closed_early():
    handler = RPCHandler()
    _open_outbound(handler, RPCEvent.request(4, RPCRequest(_hello())), FakeOutbound([None]))
    out = handler.poll(0.0)
    assert out.event == RPCEvent.error(
        4, RPCError(RPCErrorKind.CUSTOM, "Stream closed early. Empty response")
    )


def test_outbound_codec_error():
    handler = RPCHandler()
    _open_outbound(
        handler, RPCEvent.request(6, RPCRequest(_hello())), FakeOutbound([ValueError()])
    )
    out = handler.poll(0.0)
    assert out.event == RPCEvent.error(
        6, RPCError(RPCErrorKind.CODEC, "response codec error")
    )


def test_outbound_timeout_drops_substream():
    handler = RPCHandler()
    substream = FakeOutbound([PENDING, PENDING])
    _open_outbound(handler, RPCEvent.request(2, RPCRequest(_hello())), substream)
    assert handler.poll(RESPONSE_TIMEOUT + 1.0) is None
    assert handler.poll(RESPONSE_TIMEOUT + 2.0) is None
    assert len(substream.results) == 1


def test_outbound_goodbye_not_tracked():
    handler = RPCHandler()
    substream = FakeOutbound([])
    _open_outbound(
        handler, RPCEvent.request(0, RPCRequest(GoodbyeReason.FAULT)), substream
    )
    assert handler.poll(0.0) is None
    assert handler.pending_requests() == 0


def test_keep_alive_after_last_outbound():
    handler = RPCHandler(inactive_timeout=30.0)
    assert handler.connection_keep_alive() == KeepAlive.YES
    _open_outbound(
        handler, RPCEvent.request(0, RPCRequest(GoodbyeReason.FAULT)), FakeOutbound([]), 5.0
    )
    keep = handler.connection_keep_alive()
    assert keep.keep is True
    assert keep.until == 5.0 + handler.inactive_timeout
    handler.send_request(RPCEvent.request(0, RPCRequest(_hello())))
    assert handler.connection_keep_alive() == KeepAlive.YES


def test_keep_alive_stays_while_work_pending():
    handler = RPCHandler()
    handler.send_request(RPCEvent.request(0, RPCRequest(_hello())))
    handler.send_request(RPCEvent.request(1, RPCRequest(_hello())))
    opened = handler.poll(0.0)
    handler.inject_fully_negotiated_outbound(FakeOutbound([PENDING]), opened.event, 0.0)
    assert handler.connection_keep_alive() == KeepAlive.YES


def test_unexpected_outbound_negotiation_raises():
    handler = RPCHandler()
    with pytest.raises(RuntimeError):
        handler.inject_fully_negotiated_outbound(
            FakeOutbound([]), RPCEvent.request(0, RPCRequest(_hello())), 0.0
        )


def test_dial_upgrade_error_is_consumed():
    handler = RPCHandler()
    event = RPCEvent.request(0, RPCRequest(_hello()))
    handler.inject_dial_upgrade_error(event, "unsupported")
    assert handler.poll(0.0) is None
    handler.send_request(event)
    assert handler.poll(0.0).event == event