from __future__ import annotations

"""
GraphQL surface over the submission service.

Design intent:
- Resolvers are adapters: every read and the text mutation go through
  SubmissionService, so both read surfaces share ordering, limits and rules.
- Voice creation stays on the multipart route; uploads are not modelled here.
"""

from typing import Any

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLError,
    GraphQLField,
    GraphQLInt,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLSchema,
    GraphQLString,
    graphql_sync,
)

from guestbook.internal_core.contracts import (
    StorageUnavailable,
    SubmissionRejected,
    TextSubmission,
    format_timestamp,
)
from guestbook.internal_core.service import SubmissionService

BAD_USER_INPUT = "BAD_USER_INPUT"
INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


def _serialize_datetime(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return format_timestamp(value)
    raise GraphQLError(f"DateTime cannot represent value: {value!r}")


DateTimeScalar = GraphQLScalarType(
    name="DateTime",
    description="ISO 8601 timestamp with offset.",
    serialize=_serialize_datetime,
)


def _attr(field_type: Any, name: str) -> GraphQLField:
    return GraphQLField(field_type, resolve=lambda obj, _info: getattr(obj, name))


def _service(info: Any) -> SubmissionService:
    return info.context["service"]


def _internal_error() -> GraphQLError:
    # Detail is already logged by the service.
    return GraphQLError("internal error", extensions={"code": INTERNAL_SERVER_ERROR})


MessageType = GraphQLObjectType(
    "Message",
    lambda: {
        "id": _attr(GraphQLInt, "id"),
        "guestName": _attr(GraphQLString, "guest_name"),
        "text": _attr(GraphQLString, "text"),
        "createdAt": _attr(DateTimeScalar, "created_at"),
    },
)

VoiceMessageType = GraphQLObjectType(
    "VoiceMessage",
    lambda: {
        "id": _attr(GraphQLInt, "id"),
        "guestName": _attr(GraphQLString, "guest_name"),
        "note": _attr(GraphQLString, "note"),
        "durationSeconds": _attr(GraphQLInt, "duration_seconds"),
        "mimeType": _attr(GraphQLString, "mime_type"),
        "createdAt": _attr(DateTimeScalar, "created_at"),
        "audioUrl": GraphQLField(
            GraphQLString,
            resolve=lambda obj, _info: obj.audio_path,
        ),
    },
)


def _resolve_messages(_root: Any, info: Any, limit: Any = None) -> list[Any]:
    try:
        return _service(info).list_text_notes(limit)
    except StorageUnavailable as exc:
        raise _internal_error() from exc


def _resolve_voice_messages(_root: Any, info: Any, limit: Any = None) -> list[Any]:
    try:
        return _service(info).list_voice_notes(limit)
    except StorageUnavailable as exc:
        raise _internal_error() from exc


def _resolve_submit_message(_root: Any, info: Any, text: str, name: Any = None) -> bool:
    try:
        _service(info).create_text_note(TextSubmission(name=name, text=text))
    except SubmissionRejected as exc:
        raise GraphQLError(exc.reason, extensions={"code": BAD_USER_INPUT}) from exc
    except StorageUnavailable as exc:
        raise _internal_error() from exc
    return True


QueryType = GraphQLObjectType(
    "Query",
    {
        "messages": GraphQLField(
            GraphQLList(MessageType),
            args={"limit": GraphQLArgument(GraphQLInt)},
            resolve=_resolve_messages,
        ),
        "voiceMessages": GraphQLField(
            GraphQLList(VoiceMessageType),
            args={"limit": GraphQLArgument(GraphQLInt)},
            resolve=_resolve_voice_messages,
        ),
    },
)

MutationType = GraphQLObjectType(
    "Mutation",
    {
        "submitMessage": GraphQLField(
            GraphQLBoolean,
            args={
                "name": GraphQLArgument(GraphQLString),
                "text": GraphQLArgument(GraphQLNonNull(GraphQLString)),
            },
            resolve=_resolve_submit_message,
        ),
    },
)

schema = GraphQLSchema(query=QueryType, mutation=MutationType)


def execute_graphql(
    service: SubmissionService,
    query: str,
    variables: dict[str, Any] | None = None,
    operation_name: str | None = None,
) -> tuple[int, dict[str, Any]]:
    """Run one document and pick the HTTP status for its envelope."""
    result = graphql_sync(
        schema,
        query,
        variable_values=variables,
        operation_name=operation_name,
        context_value={"service": service},
    )
    payload = result.formatted
    if not result.errors:
        return 200, payload
    codes = {(error.extensions or {}).get("code") for error in result.errors}
    if INTERNAL_SERVER_ERROR in codes:
        return 500, payload
    return 400, payload
