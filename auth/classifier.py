"""
auth/classifier.py -- Turn one request's credentials into a ClassificationResult.

Claims are checked in priority order:
  1. Authorization: Basic <base64(user:password)> -- verified against the
     CredentialStore. Success wins immediately; cookies are not looked at.
     A wrong password or an undecodable header falls through to (2).
  2. Session cookies -- every cookie carrying the configured name, in the
     order the client sent them. The first one that parses AND verifies wins.
     A malformed or forged cookie does not stop the scan: browsers send
     duplicates when a cookie's Domain changed over its lifetime.
  3. Nothing matched -> Unauthenticated().

The classifier works on plain header values rather than a framework request
object; auth/dependencies.py adapts a FastAPI Request to it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable, Iterator
from typing import Optional

from auth.models import Authenticated, ClassificationResult, Rejection, Unauthenticated
from auth.store import CredentialStore
from auth.tokens import MalformedToken, parse_token, verify_token

logger = logging.getLogger("simpleauth.auth")


def parse_basic_auth(header: Optional[str]) -> Optional[tuple[str, str]]:
    """Decode an Authorization header into (username, password).

    Returns None when the header is absent, uses another scheme, is not valid
    base64, or has no colon separating user from password.
    """
    if not header:
        return None
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def iter_cookie_values(cookie_headers: Iterable[str], name: str) -> Iterator[str]:
    """Yield the value of every cookie called name, in transport order.

    Unlike a dict-based cookie parser this keeps duplicates, which is the
    whole point: more than one session cookie may be present.
    """
    for header in cookie_headers:
        for pair in header.split(";"):
            key, sep, value = pair.strip().partition("=")
            if not sep or key.strip() != name:
                continue
            value = value.strip()
            if len(value) > 1 and value[0] == value[-1] == '"':
                value = value[1:-1]
            yield value


class RequestClassifier:
    """Extract at most one authenticated identity from a request."""

    def __init__(self, store: CredentialStore, secret: bytes, cookie_name: str) -> None:
        self._store = store
        self._secret = secret
        self.cookie_name = cookie_name

    def classify(
        self,
        authorization: Optional[str],
        cookie_headers: Iterable[str],
        now: float,
    ) -> ClassificationResult:
        credentials = parse_basic_auth(authorization)
        if credentials is not None:
            username, password = credentials
            if self._store.verify_password(username, password):
                logger.debug("basic auth valid username:%s", username)
                return Authenticated(username)
            logger.debug("basic auth rejected username:%s reason:%s", username, Rejection.credential_mismatch.value)
        else:
            logger.debug("no basic auth")

        seen = 0
        for i, value in enumerate(iter_cookie_values(cookie_headers, self.cookie_name)):
            seen += 1
            try:
                token = parse_token(value)
            except MalformedToken:
                logger.debug("cookie %d rejected reason:%s", i, Rejection.malformed_token.value)
                continue
            if verify_token(token, self._secret, now):
                logger.debug("cookie %d valid username:%s", i, token.username)
                return Authenticated(token.username)
            logger.debug("cookie %d rejected reason:%s", i, Rejection.verification_failure.value)

        if seen == 0:
            logger.debug("no cookies")
        return Unauthenticated()
