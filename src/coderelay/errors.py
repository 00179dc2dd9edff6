"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    TRANSPORT_ERROR = 5
    PROTOCOL_ERROR = 6
    VALIDATION_ERROR = 7


class FailureKind(str, Enum):
    TRANSPORT_OPEN_FAILURE = "transport-open-failure"
    PROTOCOL_PARSE_FAILURE = "protocol-parse-failure"
    REMOTE_REPORTED_ERROR = "remote-reported-error"
    ABNORMAL_CLOSE = "abnormal-close"
    USER_CANCELLED = "user-cancelled"


@dataclass
class CodeRelayError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass(frozen=True)
class RunFailure:
    """Why a run ended in the failed state."""

    kind: FailureKind
    detail: str = ""


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
