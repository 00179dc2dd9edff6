"""Append-only terminal transcript and raw keystroke capture."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from coderelay.execution.models import TranscriptLine, TranscriptOrigin

ENTER = "Enter"
BACKSPACE = "Backspace"
ARROW_KEYS = frozenset({"ArrowLeft", "ArrowRight", "ArrowUp", "ArrowDown"})


@dataclass(frozen=True)
class KeyPress:
    key: str
    ctrl: bool = False
    alt: bool = False
    meta: bool = False
    shift: bool = False

    @property
    def is_printable(self) -> bool:
        return len(self.key) == 1 and not (self.ctrl or self.alt or self.meta)


@dataclass(frozen=True)
class KeyResult:
    consumed: bool
    committed: str | None = None


IGNORED = KeyResult(consumed=False)
CONSUMED = KeyResult(consumed=True)


class Transcript:
    def __init__(self) -> None:
        self._lines: list[TranscriptLine] = []
        self._lock = threading.Lock()

    def append_program(self, text: str, *, synthetic: bool = False) -> TranscriptLine:
        return self._append(TranscriptLine(TranscriptOrigin.PROGRAM, text, synthetic))

    def append_user(self, text: str) -> TranscriptLine:
        return self._append(TranscriptLine(TranscriptOrigin.USER, text))

    def reset(self, *lines: TranscriptLine) -> None:
        with self._lock:
            self._lines = list(lines)

    def clear(self) -> None:
        self.reset()

    def snapshot(self) -> tuple[TranscriptLine, ...]:
        with self._lock:
            return tuple(self._lines)

    def committed_input(self) -> str:
        return "\n".join(line.text for line in self.snapshot() if line.origin == TranscriptOrigin.USER)

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def _append(self, line: TranscriptLine) -> TranscriptLine:
        with self._lock:
            self._lines.append(line)
        return line


class PendingInput:
    """Keystroke buffer with trailing-backspace editing only; there is no cursor."""

    def __init__(self) -> None:
        self._chars: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._chars)

    def clear(self) -> None:
        self._chars.clear()

    def feed(self, key: KeyPress) -> KeyResult:
        if key.is_printable:
            self._chars.append(key.key)
            return CONSUMED
        if key.key == BACKSPACE:
            if self._chars:
                self._chars.pop()
            return CONSUMED
        if key.key == ENTER:
            line = self.text
            if not line.strip():
                return CONSUMED
            self._chars.clear()
            return KeyResult(consumed=True, committed=line)
        if key.key in ARROW_KEYS:
            return CONSUMED
        return IGNORED


def keys_for_line(text: str) -> list[KeyPress]:
    presses = [KeyPress(char) for char in text if char not in "\r\n"]
    presses.append(KeyPress(ENTER))
    return presses
