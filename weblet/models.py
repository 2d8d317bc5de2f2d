"""Domain models for the in-memory auth store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class User:
    """Represents a user account held by :class:`weblet.sessions.MemStore`."""

    id: str
    name: str
    password_hash: str
    last_login: Optional[datetime] = None


__all__ = ["User"]
