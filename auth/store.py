"""
auth/store.py -- In-memory credential store keyed by username.

Pattern: Repository over a read-only mapping. The store is built once at
startup from whatever the loader in core/sources.py produced and is never
written to afterwards, so concurrent readers need no locking.

Hash format: self-describing modular-crypt strings ("$<id>$..."). The
identifier selects a verifier from _SCHEMES: bcrypt ($2a$, $2b$, $2y$) for
new entries, and sha256-crypt ($5$) so password files written for earlier
simpleauth releases keep working. New hashes are always bcrypt.

Security:
  [C1] Unknown usernames still run one bcrypt verification against
       _DUMMY_HASH so response time does not reveal which usernames exist.

  verify_password() never raises. A malformed or unrecognized stored hash
  is a plain False here; the loader is the place that reports it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Optional

import bcrypt
from passlib.hash import sha256_crypt

logger = logging.getLogger("simpleauth.auth")

# ---------------------------------------------------------------------------
# Hash schemes
# ---------------------------------------------------------------------------


def _verify_bcrypt(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def _verify_sha256_crypt(plain: str, hashed: str) -> bool:
    try:
        return sha256_crypt.verify(plain, hashed)
    except ValueError:
        return False


_SCHEMES: dict[str, Callable[[str, str], bool]] = {
    "2a": _verify_bcrypt,
    "2b": _verify_bcrypt,
    "2y": _verify_bcrypt,
    "5": _verify_sha256_crypt,
}


def identify_scheme(hashed: str) -> Optional[str]:
    """Return the scheme identifier of a modular-crypt hash, or None if unsupported."""
    if not hashed.startswith("$"):
        return None
    ident = hashed[1:].split("$", 1)[0]
    return ident if ident in _SCHEMES else None


def hash_password(plain: str, rounds: Optional[int] = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    rounds defaults to bcrypt's own work factor. Tests pass a low value to
    keep the suite fast.
    """
    salt = bcrypt.gensalt() if rounds is None else bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


# Computed once at module load so the first unknown-user attempt is not
# measurably faster than later ones [C1].
_DUMMY_HASH: str = hash_password("simpleauth_timing_dummy")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Read-only username -> password hash mapping.

    Usage:
        store = CredentialStore({"alice": hash_password("wonderland")})
        store.verify_password("alice", "wonderland")   # True
    """

    def __init__(self, entries: Mapping[str, str]) -> None:
        self._hashes = MappingProxyType(dict(entries))

    def __len__(self) -> int:
        return len(self._hashes)

    def __contains__(self, username: object) -> bool:
        return username in self._hashes

    def verify_password(self, username: str, password: str) -> bool:
        """Return True if password matches the stored hash for username.

        Returns False for unknown users, wrong passwords and unusable stored
        hashes alike.
        """
        hashed = self._hashes.get(username)
        if hashed is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            _verify_bcrypt(password, _DUMMY_HASH)
            logger.debug("no hash found for username:%s", username)
            return False

        scheme = identify_scheme(hashed)
        if scheme is None:
            logger.debug("unsupported hash scheme for username:%s", username)
            return False

        valid = _SCHEMES[scheme](password, hashed)
        logger.debug("password verification for username:%s valid:%s", username, valid)
        return valid
