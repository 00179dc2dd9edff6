from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from coderelay.execution.models import TranscriptLine, TranscriptOrigin
from coderelay.execution.transcript import PendingInput, Transcript, keys_for_line

_TEXT = st.text(alphabet=st.characters(min_codepoint=32, max_codepoint=126), max_size=20)
_ENTRIES = st.lists(st.tuples(st.sampled_from(list(TranscriptOrigin)), _TEXT), max_size=30)


def _fill(entries: list[tuple[TranscriptOrigin, str]]) -> Transcript:
    transcript = Transcript()
    for origin, text in entries:
        if origin == TranscriptOrigin.USER:
            transcript.append_user(text)
        else:
            transcript.append_program(text)
    return transcript


@given(_ENTRIES)
def test_transcript_keeps_append_order(entries: list[tuple[TranscriptOrigin, str]]) -> None:
    transcript = _fill(entries)

    assert transcript.snapshot() == tuple(TranscriptLine(origin, text) for origin, text in entries)
    assert len(transcript) == len(entries)


@given(_ENTRIES)
def test_clear_is_idempotent(entries: list[tuple[TranscriptOrigin, str]]) -> None:
    transcript = _fill(entries)

    transcript.clear()
    once = transcript.snapshot()
    transcript.clear()

    assert once == ()
    assert transcript.snapshot() == once


@given(_TEXT)
def test_typed_line_commits_only_non_blank_text(text: str) -> None:
    pending = PendingInput()

    committed = [result.committed for result in map(pending.feed, keys_for_line(text)) if result.committed]

    assert committed == ([text] if text.strip() else [])
    assert pending.text == ("" if text.strip() else text)
