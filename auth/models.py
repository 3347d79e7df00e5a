"""
auth/models.py -- Domain dataclasses for forward-authentication.

Pattern: Data class (pure data container, zero logic). The codec, store,
classifier and engine do the work; these types only carry shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class Token:
    """A signed session token bound to one username and one expiry.

    expires_at is absolute Unix time in whole seconds. signature is the raw
    32-byte HMAC-SHA256 over (expires_at, username). Tokens are minted only
    on a successful login and are never mutated -- the server keeps no copy.
    """

    username: str
    expires_at: int
    signature: bytes


@dataclass(frozen=True)
class Authenticated:
    """The request proved an identity (Basic credentials or a valid cookie)."""

    username: str


@dataclass(frozen=True)
class Unauthenticated:
    """No usable claim on the request.

    Deliberately carries no reason: unknown user, wrong password, forged
    token and expired token must all look the same from the outside.
    """


ClassificationResult = Union[Authenticated, Unauthenticated]


class Rejection(str, Enum):
    """Internal failure taxonomy. Used for debug logging only."""

    malformed_token = "malformed_token"
    verification_failure = "verification_failure"
    credential_mismatch = "credential_mismatch"
