"""JSON frame codec for the runner's terminal protocol.

Inbound frames::

    {"type": "stdout" | "stderr", "data": "<fragment>"}
    {"type": "exit", "code": <int>}
    {"type": "error", "error": "<diagnostic>"}

Outbound frames are ``{"code", "input": "", "language"}`` once per connection and
``{"input": "<line>"}`` for every committed line. The ``result`` frame is never sent
by the runner; the one-shot transport uses it to hand its aggregated output to the
orchestrator through the same codec.
"""

from __future__ import annotations

import json
import logging as py_logging
from typing import Any

from coderelay.errors import CodeRelayError, ExitCode
from coderelay.execution.models import InboundMessage, MessageKind

logger = py_logging.getLogger(__name__)


class ProtocolError(CodeRelayError):
    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message, code=ExitCode.PROTOCOL_ERROR, hint="Check the runner protocol version.")
        self.raw = raw


def parse_frame(raw: str) -> InboundMessage | None:
    """Decode one inbound frame.

    Returns ``None`` for well-formed frames of an unknown type. Raises
    :class:`ProtocolError` when the payload breaks the message contract.
    """
    try:
        payload: Any = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("Inbound frame is not valid JSON.", raw=raw) from exc
    if not isinstance(payload, dict):
        raise ProtocolError("Inbound frame must be a JSON object.", raw=raw)

    frame_type = payload.get("type")
    if not isinstance(frame_type, str):
        raise ProtocolError("Inbound frame has no type.", raw=raw)

    if frame_type in (MessageKind.STDOUT.value, MessageKind.STDERR.value):
        data = payload.get("data")
        if not isinstance(data, str):
            raise ProtocolError(f"{frame_type} frame requires string data.", raw=raw)
        return InboundMessage(kind=MessageKind(frame_type), text=data)

    if frame_type == MessageKind.EXIT.value:
        code = payload.get("code")
        if isinstance(code, float) and code.is_integer():
            code = int(code)
        if not isinstance(code, int) or isinstance(code, bool):
            raise ProtocolError("exit frame requires an integer code.", raw=raw)
        return InboundMessage(kind=MessageKind.EXIT, code=code)

    if frame_type == MessageKind.ERROR.value:
        message = payload.get("error")
        if not isinstance(message, str):
            raise ProtocolError("error frame requires an error message.", raw=raw)
        return InboundMessage(kind=MessageKind.ERROR, text=message)

    if frame_type == MessageKind.RESULT.value:
        output = payload.get("output")
        if not isinstance(output, str):
            raise ProtocolError("result frame requires string output.", raw=raw)
        return InboundMessage(kind=MessageKind.RESULT, text=output)

    logger.debug("Ignoring inbound frame with unknown type=%s", frame_type)
    return None


def _dump(payload: dict[str, object]) -> str:
    return json.dumps(payload, ensure_ascii=False)


def start_message(code: str, language: str) -> dict[str, object]:
    return {"code": code, "input": "", "language": language.lower()}


def input_message(text: str) -> dict[str, object]:
    return {"input": text}


def encode_message(message: dict[str, object]) -> str:
    return _dump(message)


def encode_result(output: str) -> str:
    return _dump({"type": MessageKind.RESULT.value, "output": output})


def encode_error(message: str) -> str:
    return _dump({"type": MessageKind.ERROR.value, "error": message})
