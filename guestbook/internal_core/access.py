from __future__ import annotations

import secrets
from dataclasses import dataclass
from enum import Enum


class GateMode(str, Enum):
    OPEN = "open"
    PROTECTED = "protected"


@dataclass(frozen=True)
class AccessGate:
    """Operator credential check shared by every gated route.

    OPEN lets every request through; it is only chosen when no credential pair
    is configured and callers are expected to warn about it at startup.
    """

    mode: GateMode
    username: str = ""
    password: str = ""
    realm: str = "Admin"

    @classmethod
    def open(cls) -> "AccessGate":
        return cls(mode=GateMode.OPEN)

    @classmethod
    def protected(cls, username: str, password: str) -> "AccessGate":
        if not username or not password:
            raise ValueError("protected gate needs both username and password")
        return cls(mode=GateMode.PROTECTED, username=username, password=password)

    @classmethod
    def from_credentials(cls, username: str | None, password: str | None) -> "AccessGate":
        if not username or not password:
            return cls.open()
        return cls.protected(username, password)

    @property
    def is_open(self) -> bool:
        return self.mode is GateMode.OPEN

    @property
    def challenge(self) -> str:
        return f'Basic realm="{self.realm}"'

    def permits(self, username: str | None, password: str | None) -> bool:
        if self.is_open:
            return True
        if username is None or password is None:
            return False
        user_ok = secrets.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
        pass_ok = secrets.compare_digest(password.encode("utf-8"), self.password.encode("utf-8"))
        return user_ok and pass_ok
