"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
layer and routes do the work; these classes only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered identity.

    id is assigned by the store on insert and is None until then. It is the
    value carried in the "sub" claim of every token issued for this user.
    Records are created on registration and never mutated by the token
    workflow.
    """

    username: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    """An access token and a refresh token minted together. Never persisted."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class Claims:
    """Decoded token claims. Access and refresh tokens share this shape."""

    subject: int
    expires_at: datetime
