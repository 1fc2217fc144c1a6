from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List

from .contracts import (
    StorageUnavailable,
    TextNote,
    TextNoteDraft,
    VoiceAudio,
    VoiceNoteDraft,
    VoiceNoteMetadata,
)
from .limits import MAX_AUDIO_BYTES, MAX_AUDIO_DURATION_SECONDS, MAX_MESSAGE_LENGTH
from .store_base import SubmissionStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySubmissionStore(SubmissionStore):
    """Process-local store with the same ordering and row checks as PostgreSQL."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._text_notes: Dict[int, TextNote] = {}
        self._voice_notes: Dict[int, VoiceNoteMetadata] = {}
        self._voice_audio: Dict[int, VoiceAudio] = {}
        self._next_text_id = 1
        self._next_voice_id = 1

    def name(self) -> str:
        return "memory"

    def ensure_schema(self) -> None:
        return None

    def ping(self) -> bool:
        return True

    def insert_text_note(self, draft: TextNoteDraft, timeout: float) -> int:
        if not 1 <= len(draft.text) <= MAX_MESSAGE_LENGTH:
            raise StorageUnavailable("messages_text_check violated")
        with self._lock:
            note_id = self._next_text_id
            self._next_text_id += 1
            self._text_notes[note_id] = TextNote(
                id=note_id,
                guest_name=draft.guest_name,
                text=draft.text,
                created_at=_utc_now(),
            )
        return note_id

    def insert_voice_note(self, draft: VoiceNoteDraft, timeout: float) -> int:
        if not 1 <= len(draft.audio) <= MAX_AUDIO_BYTES:
            raise StorageUnavailable("voice_messages_audio_check violated")
        if not 0 < draft.duration_seconds <= MAX_AUDIO_DURATION_SECONDS:
            raise StorageUnavailable("voice_messages_duration_seconds_check violated")
        with self._lock:
            voice_id = self._next_voice_id
            self._next_voice_id += 1
            self._voice_notes[voice_id] = VoiceNoteMetadata(
                id=voice_id,
                guest_name=draft.guest_name,
                note=draft.note,
                duration_seconds=draft.duration_seconds,
                mime_type=draft.mime_type,
                created_at=_utc_now(),
            )
            self._voice_audio[voice_id] = VoiceAudio(audio=bytes(draft.audio), mime_type=draft.mime_type)
        return voice_id

    def list_text_notes(self, limit: int, timeout: float) -> List[TextNote]:
        with self._lock:
            rows = list(self._text_notes.values())
        rows.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return rows[: max(0, limit)]

    def list_voice_notes(self, limit: int, timeout: float) -> List[VoiceNoteMetadata]:
        with self._lock:
            rows = list(self._voice_notes.values())
        rows.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return rows[: max(0, limit)]

    def fetch_voice_audio(self, voice_id: int, timeout: float) -> VoiceAudio | None:
        with self._lock:
            return self._voice_audio.get(voice_id)
