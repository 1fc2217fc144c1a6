from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class SubmissionRejected(ValueError):
    """Caller-supplied data failed an intake rule; `reason` is safe to show."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class VoiceNoteNotFound(LookupError):
    def __init__(self, voice_id: int):
        super().__init__(f"voice note {voice_id} not found")
        self.voice_id = voice_id


class StorageUnavailable(RuntimeError):
    """Timeout, pool exhaustion or any other storage failure."""


@dataclass(frozen=True)
class TextSubmission:
    name: str | None
    text: str | None


@dataclass(frozen=True)
class VoiceSubmission:
    duration: str | None
    audio: bytes | None
    declared_mime_type: str | None
    name: str | None
    note: str | None = None


@dataclass(frozen=True)
class TextNoteDraft:
    guest_name: str
    text: str


@dataclass(frozen=True)
class VoiceNoteDraft:
    guest_name: str
    note: str
    audio: bytes
    mime_type: str
    duration_seconds: int


@dataclass(frozen=True)
class TextNote:
    id: int
    guest_name: str
    text: str
    created_at: datetime


@dataclass(frozen=True)
class VoiceNoteMetadata:
    id: int
    guest_name: str
    note: str
    duration_seconds: int
    mime_type: str
    created_at: datetime

    @property
    def audio_path(self) -> str:
        return audio_path_for(self.id)


@dataclass(frozen=True)
class VoiceAudio:
    audio: bytes
    mime_type: str


def audio_path_for(voice_id: int) -> str:
    return f"/voice-messages/{voice_id}/audio"


def format_timestamp(value: datetime) -> str:
    # Both read surfaces render timestamps through here.
    return value.isoformat()
