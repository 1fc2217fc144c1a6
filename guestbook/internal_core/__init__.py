from .access import AccessGate, GateMode
from .config import GuestbookConfig, load_config
from .memory_store import InMemorySubmissionStore

__all__ = [
    "AccessGate",
    "GateMode",
    "GuestbookConfig",
    "load_config",
    "InMemorySubmissionStore",
]
