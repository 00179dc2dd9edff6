"""One run attempt and the transport it owns."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from types import TracebackType

from coderelay.execution.models import SessionEvent, SessionEventKind, SessionState, TransportKind
from coderelay.execution.transport import Transport
from coderelay.languages import LanguageSpec

logger = py_logging.getLogger(__name__)

EventSink = Callable[[SessionEvent], None]


class Session:
    def __init__(
        self,
        session_id: int,
        *,
        language: LanguageSpec,
        source: str,
        transport: Transport,
    ) -> None:
        self.session_id = session_id
        self.language = language
        self.source = source
        self.kind: TransportKind = transport.kind
        self.state = SessionState.IDLE
        self.opened = False
        self.cancelled = False
        self._transport: Transport | None = transport

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    def attach(self, sink: EventSink) -> None:
        transport = self._transport
        if transport is None:
            return
        session_id = self.session_id

        def on_message(payload: str) -> None:
            sink(SessionEvent(session_id, SessionEventKind.MESSAGE, payload))

        def on_open() -> None:
            sink(SessionEvent(session_id, SessionEventKind.OPENED))

        def on_close(error: str | None) -> None:
            sink(SessionEvent(session_id, SessionEventKind.CLOSED, error))

        transport.open(on_message, on_open, on_close)

    def send(self, message: dict[str, object]) -> bool:
        transport = self._transport
        if transport is None:
            return False
        return transport.send(message)

    def cancel(self) -> None:
        self.cancelled = True
        self.close()

    def close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        logger.debug("Closing %s transport for session=%s", transport.kind.value, self.session_id)
        transport.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
