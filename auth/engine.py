"""
auth/engine.py -- Forward-auth decision engine.

One request, one decision, no state carried between requests:

    Start -> Classified (RequestClassifier) -> Decided (ForwardAuthEngine.decide)

Decision table:

    classification    login   status     body         Set-Cookie
    ---------------   -----   --------   ----------   ----------
    Unauthenticated   no      401        login page   no
    Unauthenticated   yes     401        login page   no
    Authenticated     no      200        empty        no
    Authenticated     yes     reserved   login page   yes

The reserved status (418 by default) exists because of how forward-auth
proxies behave: a 2xx from the auth service makes the proxy forward the
original request to the origin and drop our response headers, so a 2xx
carrying Set-Cookie would never reach the browser and the user would be
stuck in a login loop. A non-2xx is relayed verbatim to the browser, which
stores the cookie and renders the body. The reserved code is emitted for no
other reason so it stays unambiguous in logs and tests.

200 is the only response that lets the proxy continue to the origin.

Layer rule: no imports from api/ or core/. The HTTP layer reads request
headers and turns a Decision into a framework response.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from auth.classifier import RequestClassifier
from auth.models import Authenticated, ClassificationResult, Unauthenticated
from auth.store import CredentialStore
from auth.tokens import issue_token, serialize_token

SECRET_SIZE = 64
DEFAULT_COOKIE_NAME = "simpleauth-token"
DEFAULT_TOKEN_DELIVERED_STATUS = 418

# Request signals
LOGIN_HEADER = "X-Simpleauth-Login"
DOMAIN_HEADER = "X-Simpleauth-Domain"

# Response headers
USERNAME_HEADER = "X-Simpleauth-Username"
OUTCOME_HEADER = "X-Simpleauth-Authentication"

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"

LOGIN_CHALLENGE = "Simpleauth-Login"
BASIC_CHALLENGE = 'Basic realm="simpleauth"'


def validate_token_delivered_status(status: int) -> int:
    """Reject reserved-status values a forward-auth proxy would not relay as-is."""
    if not 400 <= status <= 599 or status == 401:
        raise ValueError(f"token delivered status must be a 4xx/5xx code other than 401 (got {status})")
    return status


@dataclass(frozen=True)
class Decision:
    """Everything the HTTP layer needs to write the response.

    headers is a list rather than a dict because WWW-Authenticate may appear
    more than once.
    """

    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Return the first value of a header (case-insensitive), or None."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def header_values(self, name: str) -> list[str]:
        wanted = name.lower()
        return [value for key, value in self.headers if key.lower() == wanted]


class ForwardAuthEngine:
    """Decide the response to a forward-auth check.

    The secret and the credential mapping are injected once here and never
    change afterwards. Only the first 64 bytes of the secret are used.
    """

    def __init__(
        self,
        secret: bytes,
        credentials: Mapping[str, str],
        login_page: bytes,
        *,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        lifespan: timedelta = timedelta(hours=2400),
        token_delivered_status: int = DEFAULT_TOKEN_DELIVERED_STATUS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if len(secret) < SECRET_SIZE:
            raise ValueError(f"secret must be at least {SECRET_SIZE} bytes (got {len(secret)})")
        if lifespan.total_seconds() <= 0:
            raise ValueError("token lifespan must be positive")
        self._secret = bytes(secret[:SECRET_SIZE])
        self.store = credentials if isinstance(credentials, CredentialStore) else CredentialStore(credentials)
        self.login_page = login_page
        self.cookie_name = cookie_name
        self.lifespan = lifespan
        self.token_delivered_status = validate_token_delivered_status(token_delivered_status)
        self.clock = clock
        self.classifier = RequestClassifier(self.store, self._secret, cookie_name)

    @property
    def secret_set(self) -> bool:
        return len(self._secret) >= SECRET_SIZE

    # ------------------------------------------------------------------
    # Classify + decide
    # ------------------------------------------------------------------

    def classify(self, authorization: Optional[str], cookie_headers: Iterable[str]) -> ClassificationResult:
        return self.classifier.classify(authorization, cookie_headers, self.clock())

    def evaluate(
        self,
        authorization: Optional[str],
        cookie_headers: Iterable[str],
        *,
        is_login: bool,
        cookie_domain: Optional[str] = None,
        browser: bool = False,
    ) -> Decision:
        """Classify raw credentials and decide in one call."""
        result = self.classify(authorization, cookie_headers)
        return self.decide(result, is_login=is_login, cookie_domain=cookie_domain, browser=browser)

    def decide(
        self,
        result: ClassificationResult,
        *,
        is_login: bool,
        cookie_domain: Optional[str] = None,
        browser: bool = False,
    ) -> Decision:
        """Apply the decision table to a classification result.

        cookie_domain scopes the issued cookie; None (or empty) leaves Domain
        off so the cookie belongs to the exact requesting host. browser only
        controls whether HTTP Basic is advertised as a fallback challenge.
        """
        headers: list[tuple[str, str]] = []

        if isinstance(result, Authenticated):
            headers.append((OUTCOME_HEADER, OUTCOME_SUCCEEDED))
            headers.append((USERNAME_HEADER, result.username))
            if not is_login:
                return Decision(status_code=200, headers=headers)
            headers.append(("Set-Cookie", self._issue_cookie(result.username, cookie_domain)))
            status = self.token_delivered_status
        elif isinstance(result, Unauthenticated):
            headers.append((OUTCOME_HEADER, OUTCOME_FAILED))
            status = 401
        else:
            raise TypeError(f"unknown classification result: {result!r}")

        headers.append(("Content-Type", "text/html"))
        headers.append(("WWW-Authenticate", LOGIN_CHALLENGE))
        if not is_login and not browser:
            # Non-interactive clients (WebDAV, curl) can still use Basic
            headers.append(("WWW-Authenticate", BASIC_CHALLENGE))
        return Decision(status_code=status, headers=headers, body=self.login_page)

    # ------------------------------------------------------------------
    # Token issuance
    # ------------------------------------------------------------------

    def _issue_cookie(self, username: str, cookie_domain: Optional[str]) -> str:
        now = self.clock()
        expires_at = int(math.floor(now + self.lifespan.total_seconds()))
        token = issue_token(self._secret, username, expires_at)
        max_age = max(int(expires_at - now), 0)
        cookie = (
            f"{self.cookie_name}={serialize_token(token)}; Path=/; Secure; HttpOnly; "
            f"SameSite=Strict; Max-Age={max_age}"
        )
        if cookie_domain:
            cookie += f"; Domain={cookie_domain}"
        return cookie
