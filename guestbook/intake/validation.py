from __future__ import annotations

"""
Intake validation for guest submissions.

Design intent:
- Pure functions: a candidate goes in, a storage draft or a rejection comes out.
- Each rejection carries exactly one reason string fit for direct display.
"""

import math
import re

import filetype

from guestbook.internal_core.contracts import (
    SubmissionRejected,
    TextNoteDraft,
    TextSubmission,
    VoiceNoteDraft,
    VoiceSubmission,
)
from guestbook.internal_core.limits import (
    DEFAULT_AUDIO_MIME_TYPE,
    GENERIC_MIME_TYPE,
    MAX_AUDIO_BYTES,
    MAX_AUDIO_DURATION_SECONDS,
    MAX_MESSAGE_LENGTH,
    MAX_NAME_LENGTH,
)

# ASCII decimal with an optional exponent.
_DURATION_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def _clean(value: str | None) -> str:
    return str(value or "").strip()


def _check_name_length(name: str) -> None:
    # len() counts code points, not encoded bytes.
    if len(name) > MAX_NAME_LENGTH:
        raise SubmissionRejected("name is too long")


def validate_text_submission(candidate: TextSubmission) -> TextNoteDraft:
    name = _clean(candidate.name)
    text = _clean(candidate.text)

    _check_name_length(name)
    if not text:
        raise SubmissionRejected("message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise SubmissionRejected("message too long")
    return TextNoteDraft(guest_name=name, text=text)


def round_half_away_from_zero(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def parse_duration_seconds(raw: str | None) -> int:
    text = _clean(raw)
    if not text:
        raise SubmissionRejected("duration is required")
    if not _DURATION_RE.fullmatch(text):
        raise SubmissionRejected("invalid duration")
    value = float(text)
    if not math.isfinite(value):
        raise SubmissionRejected("invalid duration")
    seconds = round_half_away_from_zero(value)
    if seconds <= 0 or seconds > MAX_AUDIO_DURATION_SECONDS:
        raise SubmissionRejected("duration exceeds limit")
    return seconds


def sniff_mime_type(audio: bytes) -> str:
    kind = filetype.guess(audio)
    if kind is None:
        return GENERIC_MIME_TYPE
    return str(kind.mime)


def resolve_audio_mime_type(declared: str | None, audio: bytes) -> str:
    mime_type = _clean(declared)
    if not mime_type:
        mime_type = sniff_mime_type(audio)
    if not mime_type or mime_type == GENERIC_MIME_TYPE:
        mime_type = DEFAULT_AUDIO_MIME_TYPE
    if not mime_type.startswith("audio/") and "webm" not in mime_type:
        raise SubmissionRejected("unsupported audio type")
    return mime_type


def validate_voice_submission(candidate: VoiceSubmission) -> VoiceNoteDraft:
    duration_seconds = parse_duration_seconds(candidate.duration)

    if candidate.audio is None:
        raise SubmissionRejected("audio file is required")
    audio = bytes(candidate.audio)
    if not audio:
        raise SubmissionRejected("audio file is empty")
    if len(audio) > MAX_AUDIO_BYTES:
        raise SubmissionRejected("audio file too large")

    mime_type = resolve_audio_mime_type(candidate.declared_mime_type, audio)

    name = _clean(candidate.name)
    if not name:
        raise SubmissionRejected("name is required")
    _check_name_length(name)

    return VoiceNoteDraft(
        guest_name=name,
        note=_clean(candidate.note),
        audio=audio,
        mime_type=mime_type,
        duration_seconds=duration_seconds,
    )
