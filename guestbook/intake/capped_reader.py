from __future__ import annotations

"""
Byte ceilings for untrusted payloads.

Design intent:
- Enforce limits while bytes arrive, not after the whole body is buffered.
- Stay independent of the HTTP library so every route gets the same ceiling.
"""

from typing import AsyncGenerator, AsyncIterable, BinaryIO

_READ_CHUNK_BYTES = 64 * 1024


class PayloadTooLarge(ValueError):
    def __init__(self, limit: int):
        super().__init__(f"payload exceeds {limit} bytes")
        self.limit = limit


class CappedReader:
    """Counts bytes flowing through and aborts once `limit` is crossed."""

    def __init__(self, limit: int):
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.limit = limit
        self.consumed = 0

    def feed(self, chunk: bytes) -> bytes:
        self.consumed += len(chunk)
        if self.consumed > self.limit:
            raise PayloadTooLarge(self.limit)
        return chunk

    async def stream(self, source: AsyncIterable[bytes]) -> AsyncGenerator[bytes, None]:
        async for chunk in source:
            if chunk:
                yield self.feed(chunk)

    async def read_all(self, source: AsyncIterable[bytes]) -> bytes:
        parts: list[bytes] = []
        async for chunk in self.stream(source):
            parts.append(chunk)
        return b"".join(parts)


def read_capped(fileobj: BinaryIO, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes so an oversized file is detectable."""
    budget = limit + 1
    parts: list[bytes] = []
    while budget > 0:
        chunk = fileobj.read(min(_READ_CHUNK_BYTES, budget))
        if not chunk:
            break
        parts.append(chunk)
        budget -= len(chunk)
    return b"".join(parts)
