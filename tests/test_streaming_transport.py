from __future__ import annotations

import json
from collections.abc import Iterator

import pytest

from coderelay.errors import CodeRelayError
from coderelay.execution.models import TransportKind
from coderelay.execution.streaming import StreamingTransport


def _run_now(target) -> None:
    target()


class _FakeConnection:
    def __init__(self, frames: list[str | bytes], *, fail_with: Exception | None = None) -> None:
        self.frames = frames
        self.fail_with = fail_with
        self.sent: list[dict[str, object]] = []
        self.close_calls = 0
        self.on_frame = None

    def __iter__(self) -> Iterator[str | bytes]:
        for frame in self.frames:
            yield frame
            if self.on_frame is not None:
                self.on_frame(frame)
        if self.fail_with is not None:
            raise self.fail_with

    def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def close(self) -> None:
        self.close_calls += 1


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def on_message(self, payload: str) -> None:
        self.events.append(("message", payload))

    def on_open(self) -> None:
        self.events.append(("open", None))

    def on_close(self, error: str | None) -> None:
        self.events.append(("close", error))


def test_forwards_frames_in_order_then_closes() -> None:
    connection = _FakeConnection(['{"type": "stdout", "data": "a"}', b'{"type": "exit", "code": 0}'])
    urls: list[tuple[str, float]] = []

    def connector(url: str, open_timeout: float) -> _FakeConnection:
        urls.append((url, open_timeout))
        return connection

    recorder = _Recorder()
    transport = StreamingTransport(
        "ws://runner:8000/python-terminal",
        open_timeout_seconds=2.5,
        connector=connector,
        spawn=_run_now,
    )
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    assert transport.kind == TransportKind.STREAMING
    assert urls == [("ws://runner:8000/python-terminal", 2.5)]
    assert recorder.events == [
        ("open", None),
        ("message", '{"type": "stdout", "data": "a"}'),
        ("message", '{"type": "exit", "code": 0}'),
        ("close", None),
    ]
    assert connection.close_calls == 1
    assert transport.connected is False


def test_send_while_connected_encodes_json() -> None:
    connection = _FakeConnection(['{"type": "stdout", "data": "Name? "}'])
    transport = StreamingTransport("ws://runner/python-terminal", connector=lambda *_: connection, spawn=_run_now)
    delivered: list[bool] = []

    def reply(_: object) -> None:
        assert transport.connected
        delivered.append(transport.send({"input": "Ada"}))

    connection.on_frame = reply
    recorder = _Recorder()
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    assert delivered == [True]
    assert connection.sent == [{"input": "Ada"}]


def test_send_without_connection_returns_false() -> None:
    transport = StreamingTransport("ws://runner/python-terminal", connector=lambda *_: _FakeConnection([]))

    assert transport.send({"input": "x"}) is False


def test_connect_failure_reports_error_without_open() -> None:
    def connector(url: str, open_timeout: float) -> _FakeConnection:
        raise OSError("Connection refused")

    recorder = _Recorder()
    transport = StreamingTransport("ws://runner/python-terminal", connector=connector, spawn=_run_now)
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    assert recorder.events == [("close", "Connection refused")]


def test_reader_failure_reports_error() -> None:
    connection = _FakeConnection(['{"type": "stdout", "data": "partial"}'], fail_with=RuntimeError("reset by peer"))
    recorder = _Recorder()
    transport = StreamingTransport("ws://runner/python-terminal", connector=lambda *_: connection, spawn=_run_now)
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    assert recorder.events[-1] == ("close", "reset by peer")


def test_close_raises_on_close_exactly_once() -> None:
    scheduled: list = []
    connection = _FakeConnection(['{"type": "stdout", "data": "late"}'])
    recorder = _Recorder()
    transport = StreamingTransport(
        "ws://runner/python-terminal",
        connector=lambda *_: connection,
        spawn=scheduled.append,
    )
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    transport.close()
    transport.close()
    scheduled[0]()

    assert recorder.events == [("close", None)]
    assert connection.close_calls == 1


def test_open_twice_is_rejected() -> None:
    transport = StreamingTransport(
        "ws://runner/python-terminal",
        connector=lambda *_: _FakeConnection([]),
        spawn=_run_now,
    )
    recorder = _Recorder()
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    with pytest.raises(CodeRelayError):
        transport.open(recorder.on_message, recorder.on_open, recorder.on_close)


def test_default_connector_rejects_http_urls() -> None:
    recorder = _Recorder()
    transport = StreamingTransport("http://runner/python-terminal", spawn=_run_now)
    transport.open(recorder.on_message, recorder.on_open, recorder.on_close)

    assert len(recorder.events) == 1
    kind, error = recorder.events[0]
    assert kind == "close"
    assert "Invalid terminal address" in str(error)
