"""Execution session domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from coderelay.languages import LanguageSpec


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (SessionState.CONNECTING, SessionState.STREAMING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED)


class TransportKind(str, Enum):
    ONESHOT = "oneshot"
    STREAMING = "streaming"


class TranscriptOrigin(str, Enum):
    PROGRAM = "program"
    USER = "user"


@dataclass(frozen=True)
class TranscriptLine:
    origin: TranscriptOrigin
    text: str
    synthetic: bool = False


class MessageKind(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT = "exit"
    ERROR = "error"
    RESULT = "result"


@dataclass(frozen=True)
class InboundMessage:
    kind: MessageKind
    text: str = ""
    code: int | None = None


@dataclass(frozen=True)
class RunRequest:
    language: LanguageSpec
    source: str
    stdin: str = ""


class SessionEventKind(str, Enum):
    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"


@dataclass(frozen=True)
class SessionEvent:
    session_id: int
    kind: SessionEventKind
    payload: str | None = None
