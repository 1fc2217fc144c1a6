from __future__ import annotations

"""
Submission service: the single writer and the single read API.

Design intent:
- Validate before any storage call; storage only ever sees drafts.
- Give both read surfaces one ordered, capped view of the data.
- Keep rejection, not-found and storage failure as separate exception types.
"""

import logging
from typing import Any

from guestbook.intake.validation import validate_text_submission, validate_voice_submission

from .config import GuestbookConfig
from .contracts import (
    StorageUnavailable,
    SubmissionRejected,
    TextNote,
    TextSubmission,
    VoiceAudio,
    VoiceNoteMetadata,
    VoiceNoteNotFound,
    VoiceSubmission,
)
from .limits import MAX_LIST_LIMIT
from .memory_store import InMemorySubmissionStore
from .store import PostgresSubmissionStore
from .store_base import SubmissionStore

logger = logging.getLogger(__name__)


def resolve_limit(requested: Any, ceiling: int = MAX_LIST_LIMIT) -> int:
    if isinstance(requested, bool) or not isinstance(requested, int):
        return ceiling
    if 0 < requested <= ceiling:
        return requested
    return ceiling


class SubmissionService:
    def __init__(
        self,
        store: SubmissionStore,
        *,
        timeout_seconds: float = 3.0,
        voice_timeout_seconds: float = 5.0,
        list_ceiling: int = MAX_LIST_LIMIT,
    ):
        self.store = store
        self._timeout = timeout_seconds
        self._voice_timeout = voice_timeout_seconds
        self._ceiling = list_ceiling

    @classmethod
    def from_config(cls, config: GuestbookConfig) -> "SubmissionService":
        return cls(
            build_store(config),
            timeout_seconds=config.STORAGE_TIMEOUT_SECONDS,
            voice_timeout_seconds=config.VOICE_STORAGE_TIMEOUT_SECONDS,
        )

    def create_text_note(self, candidate: TextSubmission) -> int:
        try:
            draft = validate_text_submission(candidate)
        except SubmissionRejected as exc:
            logger.debug("text note rejected reason=%s", exc.reason)
            raise
        try:
            return self.store.insert_text_note(draft, self._timeout)
        except StorageUnavailable as exc:
            logger.error("insert text note failed: %s", exc)
            raise

    def create_voice_note(self, candidate: VoiceSubmission) -> int:
        try:
            draft = validate_voice_submission(candidate)
        except SubmissionRejected as exc:
            logger.debug("voice note rejected reason=%s", exc.reason)
            raise
        try:
            return self.store.insert_voice_note(draft, self._voice_timeout)
        except StorageUnavailable as exc:
            logger.error(
                "insert voice note failed bytes=%s mime=%s: %s",
                len(draft.audio),
                draft.mime_type,
                exc,
            )
            raise

    def list_text_notes(self, limit: Any = None) -> list[TextNote]:
        try:
            return self.store.list_text_notes(resolve_limit(limit, self._ceiling), self._timeout)
        except StorageUnavailable as exc:
            logger.error("list text notes failed: %s", exc)
            raise

    def list_voice_notes(self, limit: Any = None) -> list[VoiceNoteMetadata]:
        try:
            return self.store.list_voice_notes(resolve_limit(limit, self._ceiling), self._timeout)
        except StorageUnavailable as exc:
            logger.error("list voice notes failed: %s", exc)
            raise

    def get_voice_audio(self, voice_id: int) -> VoiceAudio:
        try:
            found = self.store.fetch_voice_audio(voice_id, self._timeout)
        except StorageUnavailable as exc:
            logger.error("fetch voice audio failed id=%s: %s", voice_id, exc)
            raise
        if found is None:
            raise VoiceNoteNotFound(voice_id)
        return found


def build_store(config: GuestbookConfig) -> SubmissionStore:
    if config.uses_memory_store:
        return InMemorySubmissionStore()
    return PostgresSubmissionStore(
        config.DATABASE_URL,
        max_connections=config.DB_POOL_MAX_CONNECTIONS,
        connect_timeout=config.DB_CONNECT_TIMEOUT_SECONDS,
    )
