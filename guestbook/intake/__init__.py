"""
Submission intake rules.

Design intent:
- Classify inbound submissions without touching storage.
- Bound every untrusted byte stream before it is buffered.
"""
from .capped_reader import CappedReader, PayloadTooLarge, read_capped
from .validation import validate_text_submission, validate_voice_submission

__all__ = [
    "CappedReader",
    "PayloadTooLarge",
    "read_capped",
    "validate_text_submission",
    "validate_voice_submission",
]
