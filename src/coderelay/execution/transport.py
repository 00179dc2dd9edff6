"""Transport capability interface shared by the one-shot and streaming channels."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable
from typing import Protocol

from coderelay.errors import CodeRelayError, ExitCode
from coderelay.execution.models import TransportKind

logger = py_logging.getLogger(__name__)

OnMessage = Callable[[str], None]
OnOpen = Callable[[], None]
OnClose = Callable[[str | None], None]
Spawn = Callable[[Callable[[], None]], None]


class Transport(Protocol):
    kind: TransportKind

    @property
    def connected(self) -> bool: ...

    def open(self, on_message: OnMessage, on_open: OnOpen, on_close: OnClose) -> None: ...

    def send(self, message: dict[str, object]) -> bool: ...

    def close(self) -> None: ...


def spawn_daemon(target: Callable[[], None]) -> None:
    thread = threading.Thread(target=target, name="coderelay-transport", daemon=True)
    thread.start()


class CallbackTransport:
    """Base for transports whose I/O runs on a spawned worker.

    Callbacks fire at most once per kind of terminal notification: ``on_close`` is
    raised exactly once, either by the worker when the channel ends or synchronously
    by :meth:`close`. Messages arriving after close are dropped.
    """

    kind: TransportKind

    def __init__(self, *, spawn: Spawn | None = None) -> None:
        self._spawn = spawn or spawn_daemon
        self._lock = threading.RLock()
        self._on_message: OnMessage | None = None
        self._on_open: OnOpen | None = None
        self._on_close: OnClose | None = None
        self._opened = False
        self._closing = False
        self._close_notified = False

    @property
    def connected(self) -> bool:
        return False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closing or self._close_notified

    def open(self, on_message: OnMessage, on_open: OnOpen, on_close: OnClose) -> None:
        with self._lock:
            if self._opened:
                raise CodeRelayError(
                    f"{self.kind.value} transport is already open.",
                    code=ExitCode.VALIDATION_ERROR,
                    hint="Create a new transport for every run.",
                )
            if self._closing:
                raise CodeRelayError(
                    f"{self.kind.value} transport was closed before it was opened.",
                    code=ExitCode.VALIDATION_ERROR,
                    hint="Create a new transport for every run.",
                )
            self._opened = True
            self._on_message = on_message
            self._on_open = on_open
            self._on_close = on_close
        self._spawn(self._run)

    def send(self, message: dict[str, object]) -> bool:
        return False

    def close(self) -> None:
        with self._lock:
            if self._closing:
                return
            self._closing = True
        self._shutdown()
        self._emit_close(None)

    def _run(self) -> None:
        raise NotImplementedError

    def _shutdown(self) -> None:
        """Release channel resources; called once from :meth:`close`."""

    def _emit_open(self) -> None:
        with self._lock:
            callback = None if self._closing or self._close_notified else self._on_open
        if callback is not None:
            callback()

    def _emit_message(self, payload: str) -> None:
        with self._lock:
            callback = None if self._closing or self._close_notified else self._on_message
        if callback is not None:
            callback(payload)

    def _emit_close(self, error: str | None) -> None:
        with self._lock:
            if self._close_notified:
                return
            self._close_notified = True
            callback = self._on_close
        if callback is not None:
            if error:
                logger.debug("%s transport closed with error: %s", self.kind.value, error)
            callback(error)


def describe_exception(exc: BaseException) -> str:
    text = str(exc).strip()
    if isinstance(exc, CodeRelayError) and exc.hint:
        text = f"{exc.message} {exc.hint}".strip()
    return text or type(exc).__name__
