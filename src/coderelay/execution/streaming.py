"""Duplex websocket channel to the runner's interactive terminal."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Iterator
from contextlib import suppress
from typing import Protocol
from urllib.parse import urlparse

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect

from coderelay.errors import CodeRelayError, ExitCode
from coderelay.execution.models import TransportKind
from coderelay.execution.protocol import encode_message
from coderelay.execution.transport import CallbackTransport, Spawn, describe_exception

logger = py_logging.getLogger(__name__)


class Connection(Protocol):
    def __iter__(self) -> Iterator[str | bytes]: ...

    def send(self, message: str) -> None: ...

    def close(self) -> None: ...


class Connector(Protocol):
    def __call__(self, url: str, open_timeout: float) -> Connection: ...


def _validate_terminal_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"ws", "wss"} or not parsed.netloc:
        raise CodeRelayError(
            f"Invalid terminal address: {url}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use a ws:// or wss:// terminal URL.",
        )


def _default_connector(url: str, open_timeout: float) -> Connection:
    _validate_terminal_url(url)
    return connect(url, open_timeout=open_timeout)


def _close_quietly(connection: Connection) -> None:
    with suppress(Exception):
        connection.close()


class StreamingTransport(CallbackTransport):
    kind = TransportKind.STREAMING

    def __init__(
        self,
        url: str,
        *,
        open_timeout_seconds: float = 10.0,
        connector: Connector | None = None,
        spawn: Spawn | None = None,
    ) -> None:
        super().__init__(spawn=spawn)
        self.url = url
        self._open_timeout = open_timeout_seconds
        self._connector = connector or _default_connector
        self._connection: Connection | None = None

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._connection is not None and not self._closing

    def send(self, message: dict[str, object]) -> bool:
        with self._lock:
            connection = None if self._closing else self._connection
        if connection is None:
            logger.debug("Dropping outbound frame; terminal connection is not open")
            return False
        try:
            connection.send(encode_message(message))
        except Exception as exc:
            logger.warning("Failed to send frame to %s: %s", self.url, exc)
            return False
        return True

    def _run(self) -> None:
        logger.debug("Opening terminal connection url=%s", self.url)
        try:
            connection = self._connector(self.url, self._open_timeout)
        except Exception as exc:
            logger.warning("Terminal connection failed url=%s error=%s", self.url, exc)
            self._emit_close(describe_exception(exc))
            return

        with self._lock:
            abandoned = self._closing
            if not abandoned:
                self._connection = connection
        if abandoned:
            _close_quietly(connection)
            return

        self._emit_open()
        error: str | None = None
        try:
            for raw in connection:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                self._emit_message(raw)
        except ConnectionClosed as exc:
            if not self.closed:
                error = describe_exception(exc)
        except Exception as exc:
            if not self.closed:
                logger.exception("Terminal connection reader failed url=%s", self.url)
                error = describe_exception(exc)
        finally:
            with self._lock:
                self._connection = None
            _close_quietly(connection)
        logger.debug("Terminal connection ended url=%s error=%s", self.url, error)
        self._emit_close(error)

    def _shutdown(self) -> None:
        with self._lock:
            connection = self._connection
        if connection is not None:
            _close_quietly(connection)
