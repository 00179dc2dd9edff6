"""Interactive execution session package."""

from .models import (
    InboundMessage,
    MessageKind,
    RunRequest,
    SessionEvent,
    SessionEventKind,
    SessionState,
    TranscriptLine,
    TranscriptOrigin,
    TransportKind,
)
from .oneshot import OneShotTransport, aggregate_run_output
from .orchestrator import (
    ABNORMAL_CLOSE_LINE,
    CANCELLED_LINE,
    RUNNING_BANNER,
    ExecutionOrchestrator,
    SessionStep,
    exit_line,
)
from .selection import build_transport_factory, select_transport_kind
from .session import Session
from .streaming import StreamingTransport
from .transcript import KeyPress, KeyResult, PendingInput, Transcript
from .transport import Transport

__all__ = [
    "ABNORMAL_CLOSE_LINE",
    "aggregate_run_output",
    "build_transport_factory",
    "CANCELLED_LINE",
    "ExecutionOrchestrator",
    "exit_line",
    "InboundMessage",
    "KeyPress",
    "KeyResult",
    "MessageKind",
    "OneShotTransport",
    "PendingInput",
    "RunRequest",
    "RUNNING_BANNER",
    "select_transport_kind",
    "Session",
    "SessionEvent",
    "SessionEventKind",
    "SessionState",
    "SessionStep",
    "StreamingTransport",
    "Transcript",
    "TranscriptLine",
    "TranscriptOrigin",
    "Transport",
    "TransportKind",
]
