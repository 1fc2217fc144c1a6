from __future__ import annotations

from abc import ABC, abstractmethod

from .contracts import TextNote, TextNoteDraft, VoiceAudio, VoiceNoteDraft, VoiceNoteMetadata


class SubmissionStore(ABC):
    """Persistence for guest submissions.

    Every method takes the caller's time budget in seconds and raises
    ``StorageUnavailable`` when it cannot finish within it.
    """

    @abstractmethod
    def ensure_schema(self) -> None: ...

    @abstractmethod
    def insert_text_note(self, draft: TextNoteDraft, timeout: float) -> int: ...

    @abstractmethod
    def insert_voice_note(self, draft: VoiceNoteDraft, timeout: float) -> int: ...

    @abstractmethod
    def list_text_notes(self, limit: int, timeout: float) -> list[TextNote]: ...

    @abstractmethod
    def list_voice_notes(self, limit: int, timeout: float) -> list[VoiceNoteMetadata]: ...

    @abstractmethod
    def fetch_voice_audio(self, voice_id: int, timeout: float) -> VoiceAudio | None: ...

    @abstractmethod
    def ping(self) -> bool: ...

    def close(self) -> None:
        return None

    @abstractmethod
    def name(self) -> str: ...
