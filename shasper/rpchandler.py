"""Per-connection handler driving the substreams of the request/response protocol."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Protocol

from .rpc import RPCError, RPCErrorKind, RPCEvent, RPCProtocol, RequestId
from .messages import RPCType

log = logging.getLogger(__name__)

# Seconds before a substream awaiting a response from the user times out.
RESPONSE_TIMEOUT = 10.0
DEFAULT_INACTIVE_TIMEOUT = 30.0
MAX_DIAL_NEGOTIATED = 8


class _Pending:
    def __repr__(self) -> str:
        return "PENDING"


PENDING = _Pending()
"""Returned by an outbound substream's ``poll`` when no response is ready yet."""


class _PendingSend(Protocol):
    def poll(self) -> bool:
        """True once the response is written and flushed; raises on failure."""


class _InboundSubstream(Protocol):
    def send(self, response: Any) -> _PendingSend: ...


class _OutboundSubstream(Protocol):
    def poll(self) -> Any:
        """``PENDING``, the response, or ``None`` if the stream closed early."""


@dataclass(frozen=True)
class KeepAlive:
    """Whether the connection should be kept open, and until when."""

    keep: bool = True
    until: Optional[float] = None

    YES: ClassVar["KeepAlive"]
    NO: ClassVar["KeepAlive"]

    @classmethod
    def until_deadline(cls, deadline: float) -> "KeepAlive":
        return cls(True, deadline)


KeepAlive.YES = KeepAlive(True)
KeepAlive.NO = KeepAlive(False)


@dataclass(frozen=True)
class HandlerEvent:
    """Output of ``RPCHandler.poll``.

    A ``custom`` event carries an ``RPCEvent`` for the behaviour. An
    ``outbound_substream_request`` asks for a substream to be opened with one
    of ``protocols``; ``event`` is the request to send on it.
    """

    kind: str
    event: RPCEvent
    protocols: tuple[RPCType, ...] = ()

    CUSTOM: ClassVar[str] = "custom"
    OUTBOUND_SUBSTREAM_REQUEST: ClassVar[str] = "outbound_substream_request"

    @classmethod
    def custom(cls, event: RPCEvent) -> "HandlerEvent":
        return cls(cls.CUSTOM, event)

    @classmethod
    def outbound(cls, event: RPCEvent, protocols: list[RPCType]) -> "HandlerEvent":
        return cls(cls.OUTBOUND_SUBSTREAM_REQUEST, event, tuple(protocols))


@dataclass
class _WaitingResponse:
    substream: _InboundSubstream
    timeout: float


@dataclass
class _ResponsePendingSend:
    sending: _PendingSend


@dataclass
class _RequestPendingResponse:
    substream: _OutboundSubstream
    event: RPCEvent
    timeout: float


class RPCHandler:
    """Tracks inbound requests awaiting answers and outbound requests awaiting replies.

    Times are plain seconds on a monotonic clock, passed in by the caller.
    """

    def __init__(
        self,
        protocol: Optional[RPCProtocol] = None,
        inactive_timeout: float = DEFAULT_INACTIVE_TIMEOUT,
    ) -> None:
        self.protocol = protocol if protocol is not None else RPCProtocol()
        self.inactive_timeout = inactive_timeout
        self.max_dial_negotiated = MAX_DIAL_NEGOTIATED
        self._pending_error: Optional[Any] = None
        self._events_out: deque[RPCEvent] = deque()
        self._dial_queue: deque[RPCEvent] = deque()
        self._dial_negotiated = 0
        self._waiting: dict[RequestId, _WaitingResponse] = {}
        self._substreams: list = field(default_factory=list) if False else []
        self._current_substream_id: RequestId = 1
        self._keep_alive = KeepAlive.YES

    @property
    def listen_protocol(self) -> RPCProtocol:
        return self.protocol

    def pending_requests(self) -> int:
        """Outbound requests being opened or still queued."""
        return self._dial_negotiated + len(self._dial_queue)

    def send_request(self, event: RPCEvent) -> None:
        """Queue an outbound substream carrying ``event``."""
        self._keep_alive = KeepAlive.YES
        self._dial_queue.append(event)

    def inject_fully_negotiated_inbound(
        self, request: Any, substream: _InboundSubstream, now: float
    ) -> None:
        """A peer opened a substream and sent ``request`` on it."""
        if request.is_goodbye():
            self._events_out.append(RPCEvent.request(0, request))
            return
        request_id = self._current_substream_id
        self._waiting[request_id] = _WaitingResponse(substream, now + RESPONSE_TIMEOUT)
        self._events_out.append(RPCEvent.request(request_id, request))
        self._current_substream_id += 1

    def inject_fully_negotiated_outbound(
        self, substream: _OutboundSubstream, event: RPCEvent, now: float
    ) -> None:
        """A substream we asked for is open and ``event`` was sent on it."""
        if self._dial_negotiated == 0:
            raise RuntimeError("no outbound substream was being opened")
        self._dial_negotiated -= 1

        if self._dial_negotiated == 0 and not self._dial_queue and not self._waiting:
            self._keep_alive = KeepAlive.until_deadline(now + self.inactive_timeout)
        else:
            self._keep_alive = KeepAlive.YES

        if event.kind == RPCEvent.REQUEST and event.payload.expect_response():
            self._substreams.append(
                _RequestPendingResponse(substream, event, now + RESPONSE_TIMEOUT)
            )

    def inject_event(self, event: RPCEvent) -> None:
        """Handle an event from the behaviour; stale responses are dropped silently."""
        if event.kind == RPCEvent.REQUEST:
            self.send_request(event)
        elif event.kind == RPCEvent.RESPONSE:
            waiting = self._waiting.pop(event.request_id, None)
            if waiting is not None:
                self._substreams.append(
                    _ResponsePendingSend(waiting.substream.send(event.payload))
                )

    def inject_dial_upgrade_error(self, event: RPCEvent, error: Any) -> None:
        if self._pending_error is None:
            self._pending_error = error

    def connection_keep_alive(self) -> KeepAlive:
        return self._keep_alive

    def poll(self, now: float) -> Optional[HandlerEvent]:
        """The next event to report, or ``None`` when nothing is ready."""
        if self._pending_error is not None:
            log.warning("RPC received error: %r", self._pending_error)
            self._pending_error = None

        if self._events_out:
            return HandlerEvent.custom(self._events_out.popleft())

        self._waiting = {
            key: waiting for key, waiting in self._waiting.items() if now <= waiting.timeout
        }

        pending = self._substreams
        self._substreams = []
        kept: list = []
        while pending:
            state = pending.pop()
            event = self._drive(state, now, kept)
            if event is not None:
                self._substreams = pending + kept
                return HandlerEvent.custom(event)
        self._substreams = kept

        if self._dial_queue and self._dial_negotiated < self.max_dial_negotiated:
            self._dial_negotiated += 1
            event = self._dial_queue.popleft()
            if event.kind == RPCEvent.REQUEST:
                return HandlerEvent.outbound(
                    event, self.protocol.outbound_protocols(event.payload)
                )
        return None

    def _drive(self, state: Any, now: float, kept: list) -> Optional[RPCEvent]:
        if isinstance(state, _ResponsePendingSend):
            try:
                done = state.sending.poll()
            except Exception:
                log.warning("Response pending send codec error")
                return RPCEvent.error(0, RPCError(RPCErrorKind.CODEC, "send codec error"))
            if not done:
                kept.append(state)
            return None

        request_id = state.event.request_id
        try:
            response = state.substream.poll()
        except Exception:
            log.warning("Request pending response codec error")
            return RPCEvent.error(
                request_id, RPCError(RPCErrorKind.CODEC, "response codec error")
            )
        if response is PENDING:
            if now < state.timeout:
                kept.append(state)
            return None
        if response is None:
            return RPCEvent.error(
                request_id,
                RPCError(RPCErrorKind.CUSTOM, "Stream closed early. Empty response"),
            )
        return RPCEvent.response(request_id, response)