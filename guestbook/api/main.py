from __future__ import annotations

"""
HTTP surface for the guestbook service.

Design intent:
- Public routes take text and voice submissions; every byte is capped on the way in.
- Operator routes (flat feed, audio, GraphQL) sit behind one access gate.
- Map rejection, not-found and storage failure to distinct status codes.
"""

import base64
import binascii
import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security.utils import get_authorization_scheme_param
from pydantic import BaseModel, field_serializer
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException, MultiPartParser

from guestbook.api.graphql_schema import execute_graphql
from guestbook.api.ranges import RangeNotSatisfiable, parse_byte_range
from guestbook.intake.capped_reader import CappedReader, PayloadTooLarge, read_capped
from guestbook.internal_core.access import AccessGate
from guestbook.internal_core.config import GuestbookConfig, load_config
from guestbook.internal_core.contracts import (
    StorageUnavailable,
    SubmissionRejected,
    TextSubmission,
    VoiceNoteNotFound,
    VoiceSubmission,
    format_timestamp,
)
from guestbook.internal_core.limits import (
    FEED_LIMIT,
    MAX_AUDIO_BYTES,
    MAX_GRAPHQL_BODY_BYTES,
    MAX_RECORD_ID,
    MAX_TEXT_BODY_BYTES,
    MAX_VOICE_BODY_BYTES,
)
from guestbook.internal_core.logging_setup import configure_logging
from guestbook.internal_core.service import SubmissionService

_VOICE_ID_RE = re.compile(r"^[0-9]+$")

logger = logging.getLogger(__name__)


class TextNoteItem(BaseModel):
    id: int
    guest_name: str
    text: str
    created_at: datetime

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return format_timestamp(value)


class VoiceNoteItem(BaseModel):
    id: int
    guest_name: str
    note: str
    duration_seconds: int
    mime_type: str
    created_at: datetime

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return format_timestamp(value)


def _get_config() -> GuestbookConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, GuestbookConfig):
        return existing
    created = load_config()
    setattr(app.state, "config", created)
    return created


def _get_submission_service() -> SubmissionService:
    existing = getattr(app.state, "submission_service", None)
    if isinstance(existing, SubmissionService):
        return existing
    created = SubmissionService.from_config(_get_config())
    setattr(app.state, "submission_service", created)
    return created


def _get_access_gate() -> AccessGate:
    existing = getattr(app.state, "access_gate", None)
    if isinstance(existing, AccessGate):
        return existing
    config = _get_config()
    created = AccessGate.from_credentials(config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
    setattr(app.state, "access_gate", created)
    return created


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    config = _get_config()
    configure_logging(config.LOG_LEVEL)
    service = _get_submission_service()
    try:
        await run_in_threadpool(service.store.ensure_schema)
    except StorageUnavailable as exc:
        logger.error("failed to ensure schema store=%s: %s", service.store.name(), exc)
        raise
    gate = _get_access_gate()
    if gate.is_open:
        logger.warning("ADMIN_USERNAME/ADMIN_PASSWORD not set. Operator routes are unprotected.")
    logger.info("guestbook ready store=%s gate=%s", service.store.name(), gate.mode.value)
    try:
        yield
    finally:
        service.store.close()


app = FastAPI(title="guestbook backend service", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_config().ALLOWED_ORIGINS),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Type"],
)


@app.exception_handler(StarletteHTTPException)
async def _plain_text_http_error(_request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    return PlainTextResponse(
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def _basic_credentials(request: Request) -> tuple[str, str] | None:
    scheme, param = get_authorization_scheme_param(request.headers.get("authorization"))
    if scheme.lower() != "basic" or not param:
        return None
    try:
        # UTF-8, not ASCII: operator credentials may carry non-ASCII characters.
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


async def require_operator(request: Request) -> None:
    gate = _get_access_gate()
    if gate.is_open:
        return
    credentials = _basic_credentials(request)
    if credentials is not None and gate.permits(*credentials):
        return
    raise HTTPException(
        status_code=401,
        detail="unauthorized",
        headers={"WWW-Authenticate": gate.challenge},
    )


def _declared_length_exceeds(request: Request, limit: int) -> bool:
    raw = str(request.headers.get("content-length", "")).strip()
    return raw.isdigit() and int(raw) > limit


async def _read_capped_body(request: Request, limit: int, reason: str) -> bytes:
    if _declared_length_exceeds(request, limit):
        raise HTTPException(status_code=413, detail=reason)
    try:
        return await CappedReader(limit).read_all(request.stream())
    except PayloadTooLarge as exc:
        raise HTTPException(status_code=413, detail=reason) from exc


def _parse_message_payload(content_type: str, body: bytes) -> TextSubmission:
    invalid = HTTPException(status_code=400, detail="invalid message payload")
    if "application/json" in content_type.lower():
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise invalid from exc
        if not isinstance(payload, dict):
            raise invalid
    else:
        try:
            pairs = parse_qsl(body.decode("utf-8"), keep_blank_values=True)
        except UnicodeDecodeError as exc:
            raise invalid from exc
        payload = {}
        for key, value in pairs:
            payload.setdefault(key, value)

    name = payload.get("name")
    text = payload.get("text")
    if not isinstance(name, (str, type(None))) or not isinstance(text, (str, type(None))):
        raise invalid
    return TextSubmission(name=name, text=text)


def _form_text(form: FormData, key: str) -> str | None:
    value = form.get(key)
    return value if isinstance(value, str) else None


def _parse_voice_id(raw: str) -> int | None:
    text = str(raw or "").strip().strip("/")
    if not _VOICE_ID_RE.match(text):
        return None
    voice_id = int(text)
    if voice_id <= 0 or voice_id > MAX_RECORD_ID:
        return None
    return voice_id


@app.get("/healthz")
def healthz() -> JSONResponse:
    store = _get_submission_service().store
    healthy = store.ping()
    return JSONResponse(
        {"status": "ok" if healthy else "unavailable", "store": store.name()},
        status_code=200 if healthy else 503,
    )


@app.post("/message", status_code=201)
async def submit_message(request: Request) -> dict[str, Any]:
    body = await _read_capped_body(request, MAX_TEXT_BODY_BYTES, "message payload too large")
    candidate = _parse_message_payload(str(request.headers.get("content-type", "")), body)

    service = _get_submission_service()
    try:
        note_id = await run_in_threadpool(service.create_text_note, candidate)
    except SubmissionRejected as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    except StorageUnavailable as exc:
        raise HTTPException(status_code=500, detail="failed to store message") from exc
    return {"status": "ok", "id": note_id}


@app.post("/voice-message", status_code=201)
async def submit_voice_message(request: Request) -> dict[str, Any]:
    content_type = str(request.headers.get("content-type", ""))
    if not content_type.lower().startswith("multipart/form-data"):
        raise HTTPException(status_code=400, detail="invalid audio payload")
    if _declared_length_exceeds(request, MAX_VOICE_BODY_BYTES):
        raise HTTPException(status_code=413, detail="audio payload too large")

    reader = CappedReader(MAX_VOICE_BODY_BYTES)
    parser = MultiPartParser(request.headers, reader.stream(request.stream()), max_files=1, max_fields=8)
    try:
        form = await parser.parse()
    except PayloadTooLarge as exc:
        raise HTTPException(status_code=413, detail="audio payload too large") from exc
    except MultiPartException as exc:
        raise HTTPException(status_code=400, detail="invalid audio payload") from exc

    service = _get_submission_service()
    try:
        upload = form.get("audio")
        audio: bytes | None = None
        declared_mime_type: str | None = None
        if isinstance(upload, UploadFile):
            await upload.seek(0)
            audio = await run_in_threadpool(read_capped, upload.file, MAX_AUDIO_BYTES)
            declared_mime_type = upload.content_type
        candidate = VoiceSubmission(
            duration=_form_text(form, "duration"),
            audio=audio,
            declared_mime_type=declared_mime_type,
            name=_form_text(form, "name"),
            note=_form_text(form, "note"),
        )
        voice_id = await run_in_threadpool(service.create_voice_note, candidate)
    except SubmissionRejected as exc:
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    except StorageUnavailable as exc:
        raise HTTPException(status_code=500, detail="failed to store voice message") from exc
    finally:
        await form.close()
    return {"status": "ok", "id": voice_id}


@app.get("/admin", response_model=list[TextNoteItem], dependencies=[Depends(require_operator)])
def list_messages_feed(response: Response) -> list[TextNoteItem]:
    service = _get_submission_service()
    try:
        notes = service.list_text_notes(FEED_LIMIT)
    except StorageUnavailable as exc:
        raise HTTPException(status_code=500, detail="failed to fetch messages") from exc
    response.headers["Cache-Control"] = "no-store"
    return [
        TextNoteItem(id=item.id, guest_name=item.guest_name, text=item.text, created_at=item.created_at)
        for item in notes
    ]


@app.get(
    "/voice-messages",
    response_model=list[VoiceNoteItem],
    dependencies=[Depends(require_operator)],
)
def list_voice_messages_feed(response: Response) -> list[VoiceNoteItem]:
    service = _get_submission_service()
    try:
        notes = service.list_voice_notes(FEED_LIMIT)
    except StorageUnavailable as exc:
        raise HTTPException(status_code=500, detail="failed to fetch voice messages") from exc
    response.headers["Cache-Control"] = "no-store"
    return [
        VoiceNoteItem(
            id=item.id,
            guest_name=item.guest_name,
            note=item.note,
            duration_seconds=item.duration_seconds,
            mime_type=item.mime_type,
            created_at=item.created_at,
        )
        for item in notes
    ]


@app.api_route(
    "/voice-messages/{voice_id}/audio",
    methods=["GET", "HEAD"],
    dependencies=[Depends(require_operator)],
)
def stream_voice_audio(voice_id: str, request: Request) -> Response:
    parsed_id = _parse_voice_id(voice_id)
    if parsed_id is None:
        raise HTTPException(status_code=404, detail="not found")

    service = _get_submission_service()
    try:
        clip = service.get_voice_audio(parsed_id)
    except VoiceNoteNotFound as exc:
        raise HTTPException(status_code=404, detail="not found") from exc
    except StorageUnavailable as exc:
        raise HTTPException(status_code=500, detail="failed to fetch audio") from exc

    size = len(clip.audio)
    headers = {"Cache-Control": "no-store", "Accept-Ranges": "bytes"}
    try:
        byte_range = parse_byte_range(request.headers.get("range"), size)
    except RangeNotSatisfiable:
        headers["Content-Range"] = f"bytes */{size}"
        return Response(status_code=416, headers=headers)

    if byte_range is None:
        return Response(content=clip.audio, media_type=clip.mime_type, headers=headers)
    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    return Response(
        content=clip.audio[start : end + 1],
        status_code=206,
        media_type=clip.mime_type,
        headers=headers,
    )


@app.post("/graphql", dependencies=[Depends(require_operator)])
async def graphql_endpoint(request: Request) -> JSONResponse:
    body = await _read_capped_body(request, MAX_GRAPHQL_BODY_BYTES, "graphql request too large")
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="invalid graphql request") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="invalid graphql request")

    query = payload.get("query")
    variables = payload.get("variables")
    operation_name = payload.get("operationName")
    if query is not None and not isinstance(query, str):
        raise HTTPException(status_code=400, detail="invalid graphql request")
    if variables is not None and not isinstance(variables, dict):
        raise HTTPException(status_code=400, detail="invalid graphql request")
    if operation_name is not None and not isinstance(operation_name, str):
        raise HTTPException(status_code=400, detail="invalid graphql request")
    if not str(query or "").strip():
        raise HTTPException(status_code=400, detail="query required")

    status_code, envelope = await run_in_threadpool(
        execute_graphql,
        _get_submission_service(),
        str(query),
        variables,
        operation_name or None,
    )
    return JSONResponse(envelope, status_code=status_code)
