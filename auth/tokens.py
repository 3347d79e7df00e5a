"""
auth/tokens.py -- Session token codec: issue, serialize, parse, verify.

Wire format (before base64):

    +-------------------+----------------------+-------------------+
    | expires_at (8)    | HMAC-SHA256 (32)     | username (utf-8)  |
    | big-endian int64  |                      | remaining bytes   |
    +-------------------+----------------------+-------------------+

The whole blob is URL-safe base64 without padding, so it fits in a cookie
value without quoting. Both leading fields are fixed-width, which means the
username can contain any character (including whatever a delimiter would
have been) without making the layout ambiguous.

MAC input is expires_at (8 bytes) || username. The fixed-width prefix makes
the encoding injective: no two (username, expires_at) pairs produce the same
MAC input, so a signature can neither be moved to another username nor be
reused with a shorter or longer expiry.

Security design decisions:
  Verification returns a bool, not a reason. A forged token and an expired
  token get the same treatment (re-prompt for login) and must not be told
  apart by the client.

  Signatures are compared with hmac.compare_digest so response time does not
  leak how many leading MAC bytes matched.

  parse_token() never verifies. It only splits attacker-controlled input
  into fields and raises MalformedToken on anything it cannot split.

Layer rule: stdlib only. No imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import struct

from auth.models import Token

_EXPIRY = struct.Struct(">q")
_MAC_SIZE = hashlib.sha256().digest_size
_HEADER_SIZE = _EXPIRY.size + _MAC_SIZE


class MalformedToken(ValueError):
    """The serialized token could not be split into its three fields."""


def _mac_input(username: str, expires_at: int) -> bytes:
    return _EXPIRY.pack(expires_at) + username.encode("utf-8")


def _compute_mac(secret: bytes, username: str, expires_at: int) -> bytes:
    return hmac.new(secret, _mac_input(username, expires_at), hashlib.sha256).digest()


# ---------------------------------------------------------------------------
# Issue / serialize
# ---------------------------------------------------------------------------


def issue_token(secret: bytes, username: str, expires_at: int) -> Token:
    """Return a token for username that stops verifying at expires_at.

    Raises ValueError for an empty username: a token must name someone.
    """
    if not username:
        raise ValueError("token username must not be empty")
    return Token(
        username=username,
        expires_at=expires_at,
        signature=_compute_mac(secret, username, expires_at),
    )


def serialize_token(token: Token) -> str:
    """Encode a token as a cookie-safe string (unpadded URL-safe base64)."""
    raw = _EXPIRY.pack(token.expires_at) + token.signature + token.username.encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Parse / verify
# ---------------------------------------------------------------------------


def parse_token(value: str) -> Token:
    """Split a serialized token back into its fields without verifying it.

    Raises MalformedToken for anything that is not exactly the layout
    produced by serialize_token(): bad base64, a blob too short to hold a
    non-empty username, or a username that is not valid UTF-8.
    """
    try:
        encoded = value.encode("ascii")
        raw = base64.b64decode(encoded + b"=" * (-len(encoded) % 4), altchars=b"-_", validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise MalformedToken("token is not valid base64") from e

    if len(raw) <= _HEADER_SIZE:
        raise MalformedToken("token is too short")

    (expires_at,) = _EXPIRY.unpack_from(raw)
    signature = raw[_EXPIRY.size : _HEADER_SIZE]
    try:
        username = raw[_HEADER_SIZE:].decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedToken("token username is not valid UTF-8") from e

    return Token(username=username, expires_at=expires_at, signature=signature)


def verify_token(token: Token, secret: bytes, now: float) -> bool:
    """Return True only if the signature matches and the token has not expired.

    The MAC is checked before the clock so a forged token costs the same as
    an expired one.
    """
    if not token.username or len(token.signature) != _MAC_SIZE:
        return False
    expected = _compute_mac(secret, token.username, token.expires_at)
    mac_ok = hmac.compare_digest(expected, token.signature)
    return mac_ok and now < token.expires_at
