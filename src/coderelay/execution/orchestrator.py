"""Execution state machine: one session, one transport, one transcript."""

from __future__ import annotations

import itertools
import logging as py_logging
import queue
import time
from collections import deque
from dataclasses import dataclass
from types import TracebackType

from coderelay.config import AppConfig
from coderelay.errors import FailureKind, RunFailure
from coderelay.execution.models import (
    MessageKind,
    RunRequest,
    SessionEvent,
    SessionEventKind,
    SessionState,
    TranscriptLine,
    TranscriptOrigin,
)
from coderelay.execution.protocol import ProtocolError, input_message, parse_frame, start_message
from coderelay.execution.selection import TransportFactory, build_transport_factory, select_transport_kind
from coderelay.execution.session import Session
from coderelay.execution.transcript import IGNORED, KeyPress, KeyResult, PendingInput, Transcript, keys_for_line
from coderelay.execution.transport import describe_exception
from coderelay.languages import LanguageCatalog, LanguageSpec, default_catalog
from coderelay.logging import log_session_event

logger = py_logging.getLogger(__name__)

RUNNING_BANNER = "Running..."
CANCELLED_LINE = "[Run cancelled]"
ABNORMAL_CLOSE_LINE = "[Connection closed before the process exited]"
MAX_RECORDED_STEPS = 256


def exit_line(code: int) -> str:
    return f"\n[Process exited with code {code}]"


@dataclass(frozen=True)
class SessionStep:
    session_id: int
    step: str
    message: str


class ExecutionOrchestrator:
    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        catalog: LanguageCatalog | None = None,
        transport_factory: TransportFactory | None = None,
        language: str | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.catalog = catalog or default_catalog()
        self._transport_factory = transport_factory or build_transport_factory(self.config)
        self._language = self.catalog.get(language or self.config.default_language)
        self._transcript = Transcript()
        self._pending = PendingInput()
        self._events: queue.SimpleQueue[SessionEvent] = queue.SimpleQueue()
        self._session_ids = itertools.count(1)
        self._session: Session | None = None
        self._failure: RunFailure | None = None
        self._exit_code: int | None = None
        self._steps: deque[SessionStep] = deque(maxlen=MAX_RECORDED_STEPS)

    @property
    def language(self) -> LanguageSpec:
        return self._language

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def is_running(self) -> bool:
        return self.state.is_active

    @property
    def transcript(self) -> tuple[TranscriptLine, ...]:
        return self._transcript.snapshot()

    @property
    def pending_input(self) -> str:
        return self._pending.text

    @property
    def failure(self) -> RunFailure | None:
        return self._failure

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def list_steps(self) -> list[SessionStep]:
        return list(self._steps)

    def select_language(self, key: str) -> LanguageSpec:
        spec = self.catalog.get(key)
        if spec.key == self._language.key:
            return spec
        if self._session is not None and self._session.state.is_active:
            self._discard_session("language-change", f"Language changed to {spec.name}.")
        self._language = spec
        logger.debug("Selected language=%s", spec.key)
        return spec

    def run(self, source: str, *, language: str | None = None, restart: bool = False) -> bool:
        spec = self.catalog.get(language) if language else self._language
        if self.is_running:
            if not restart:
                current = self._session.session_id if self._session else 0
                self._record(current, "run-rejected", "A run is already active.")
                return False
            self._discard_session("restart", "Superseded by a new run.")
        elif self._session is not None:
            self._session.close()

        self._language = spec
        kind = select_transport_kind(spec.key, self.catalog)
        stdin = self._transcript.committed_input()
        self._transcript.reset(TranscriptLine(TranscriptOrigin.PROGRAM, RUNNING_BANNER, synthetic=True))
        self._pending.clear()
        self._failure = None
        self._exit_code = None

        request = RunRequest(language=spec, source=source, stdin=stdin)
        session = Session(
            next(self._session_ids),
            language=spec,
            source=source,
            transport=self._transport_factory(kind, request),
        )
        session.state = SessionState.CONNECTING
        self._session = session
        self._record(session.session_id, "connecting", f"Running {spec.name} via {kind.value} transport.")
        try:
            session.attach(self._events.put)
        except Exception as exc:
            self._fail(session, FailureKind.TRANSPORT_OPEN_FAILURE, describe_exception(exc))
        return True

    def stop(self) -> bool:
        session = self._session
        if session is None or not session.state.is_active:
            return False
        self._record(session.session_id, "stop", "Run cancelled by user.")
        session.cancel()
        self.pump()
        if session.state.is_active:
            self._fail(session, FailureKind.USER_CANCELLED, "")
        return True

    def clear(self) -> None:
        self._transcript.clear()
        self._pending.clear()

    def handle_key(self, key: KeyPress) -> KeyResult:
        if not self.is_running:
            return IGNORED
        result = self._pending.feed(key)
        if result.committed is not None:
            self._commit(result.committed)
        return result

    def type_line(self, text: str) -> bool:
        committed = False
        for key in keys_for_line(text):
            result = self.handle_key(key)
            committed = committed or result.committed is not None
        return committed

    def pump(self, timeout: float = 0.0) -> int:
        """Apply queued transport events in arrival order; returns how many were handled."""
        processed = 0
        while True:
            try:
                if timeout > 0 and processed == 0:
                    event = self._events.get(timeout=timeout)
                else:
                    event = self._events.get_nowait()
            except queue.Empty:
                return processed
            self._dispatch(event)
            processed += 1

    def wait(self, timeout: float | None = None, *, interval: float = 0.05) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.is_running:
            remaining = interval
            if deadline is not None:
                remaining = min(interval, deadline - time.monotonic())
                if remaining <= 0:
                    break
            self.pump(timeout=remaining)
        self.pump()
        return not self.is_running

    def close(self) -> None:
        if self._session is not None and self._session.state.is_active:
            self._discard_session("teardown", "Orchestrator closed.")
        elif self._session is not None:
            self._session.close()

    def __enter__(self) -> ExecutionOrchestrator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _commit(self, text: str) -> None:
        self._transcript.append_user(text)
        session = self._session
        # Input frames may only follow the start frame.
        if session is not None and session.state == SessionState.STREAMING and session.connected:
            if not session.send(input_message(text)):
                logger.warning("Input line was not delivered session=%s", session.session_id)
        else:
            logger.debug("Input line kept locally; no connected transport")

    def _dispatch(self, event: SessionEvent) -> None:
        session = self._session
        if session is None or event.session_id != session.session_id:
            logger.debug("Discarding stale %s event from session=%s", event.kind.value, event.session_id)
            return
        if event.kind == SessionEventKind.OPENED:
            self._on_opened(session)
        elif event.kind == SessionEventKind.MESSAGE:
            self._on_message(session, event.payload or "")
        elif event.kind == SessionEventKind.CLOSED:
            self._on_closed(session, event.payload)

    def _on_opened(self, session: Session) -> None:
        if session.state != SessionState.CONNECTING:
            return
        session.opened = True
        session.state = SessionState.STREAMING
        self._record(session.session_id, "streaming", "Terminal connection open.")
        if not session.send(start_message(session.source, session.language.wire_name)):
            logger.warning("Start frame was not delivered session=%s", session.session_id)

    def _on_message(self, session: Session, raw: str) -> None:
        if not session.state.is_active:
            return
        try:
            message = parse_frame(raw)
        except ProtocolError:
            self._fail(session, FailureKind.PROTOCOL_PARSE_FAILURE, raw)
            return
        if message is None:
            return

        if message.kind in (MessageKind.STDOUT, MessageKind.STDERR):
            self._transcript.append_program(message.text)
        elif message.kind == MessageKind.EXIT:
            self._transcript.append_program(exit_line(message.code), synthetic=True)
            self._complete(session, message.code)
        elif message.kind == MessageKind.RESULT:
            self._transcript.append_program(message.text)
            self._complete(session, None)
        elif message.kind == MessageKind.ERROR:
            self._fail(session, FailureKind.REMOTE_REPORTED_ERROR, message.text)

    def _on_closed(self, session: Session, error: str | None) -> None:
        if not session.state.is_active:
            return
        if session.cancelled:
            self._fail(session, FailureKind.USER_CANCELLED, "")
        elif error and not session.opened:
            self._fail(session, FailureKind.TRANSPORT_OPEN_FAILURE, error)
        else:
            self._fail(session, FailureKind.ABNORMAL_CLOSE, error or "")

    def _complete(self, session: Session, code: int | None) -> None:
        session.state = SessionState.COMPLETED
        self._exit_code = code
        self._record(session.session_id, "completed", f"Run completed (exit code {code}).")
        session.close()

    def _fail(self, session: Session, kind: FailureKind, detail: str) -> None:
        self._transcript.append_program(_diagnostic(kind, detail), synthetic=True)
        session.state = SessionState.FAILED
        self._failure = RunFailure(kind=kind, detail=detail)
        self._record(session.session_id, "failed", f"{kind.value}: {detail}" if detail else kind.value)
        session.close()

    def _discard_session(self, step: str, message: str) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        self._record(session.session_id, step, message)
        session.close()

    def _record(self, session_id: int, step: str, message: str) -> None:
        self._steps.append(SessionStep(session_id=session_id, step=step, message=message))
        log_session_event(session_id, step, message)


def _diagnostic(kind: FailureKind, detail: str) -> str:
    if kind == FailureKind.PROTOCOL_PARSE_FAILURE:
        return f"[Parse error] {detail}"
    if kind == FailureKind.REMOTE_REPORTED_ERROR:
        return f"[Error] {detail}"
    if kind == FailureKind.TRANSPORT_OPEN_FAILURE:
        return f"[Connection error] {detail}" if detail else "[Connection error]"
    if kind == FailureKind.USER_CANCELLED:
        return CANCELLED_LINE
    if detail:
        return f"{ABNORMAL_CLOSE_LINE} {detail}"
    return ABNORMAL_CLOSE_LINE
