from __future__ import annotations

MAX_MESSAGE_LENGTH = 500
MAX_NAME_LENGTH = 80
MAX_TEXT_BODY_BYTES = 16 * 1024

MAX_AUDIO_BYTES = 2 * 1024 * 1024
MAX_AUDIO_DURATION_SECONDS = 60
MULTIPART_OVERHEAD_BYTES = 64 * 1024
MAX_VOICE_BODY_BYTES = MAX_AUDIO_BYTES + MULTIPART_OVERHEAD_BYTES

# Hard ceiling for any list call, whatever the caller asks for.
MAX_LIST_LIMIT = 400
# Fixed size of the flat JSON feed.
FEED_LIMIT = 200

DEFAULT_AUDIO_MIME_TYPE = "audio/webm"
GENERIC_MIME_TYPE = "application/octet-stream"

MAX_GRAPHQL_BODY_BYTES = 64 * 1024
# Ids are SERIAL (int4); anything larger cannot exist.
MAX_RECORD_ID = 2**31 - 1
