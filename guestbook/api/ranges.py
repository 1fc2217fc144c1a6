from __future__ import annotations

import re
from typing import Optional, Tuple

_SINGLE_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", flags=re.IGNORECASE)


class RangeNotSatisfiable(ValueError):
    def __init__(self, size: int):
        super().__init__(f"range not satisfiable for {size} bytes")
        self.size = size


def parse_byte_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """Resolve a single ``Range`` header to an inclusive ``(start, end)`` pair.

    Returns None when the whole body should be served: no header, a header we
    do not understand, or a multi-range request.
    """
    if not header:
        return None
    match = _SINGLE_RANGE_RE.match(header)
    if match is None:
        return None
    raw_start, raw_end = match.group(1), match.group(2)
    if not raw_start and not raw_end:
        return None

    if not raw_start:
        # Suffix form: the last N bytes.
        suffix = int(raw_end)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiable(size)
        return max(0, size - suffix), size - 1

    start = int(raw_start)
    if start >= size:
        raise RangeNotSatisfiable(size)
    end = size - 1 if not raw_end else min(int(raw_end), size - 1)
    if end < start:
        return None
    return start, end
