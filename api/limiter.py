"""
api/limiter.py -- Shared slowapi rate limiter instance.

Applied by SlowAPIMiddleware in api/main.py as a default limit on every
route, so repeated Basic-auth guessing from one client is throttled. /health
is exempt.

Forward-auth proxies connect from a single address, so clients are keyed by
what the proxy reports: X-Real-IP (nginx), then the first X-Forwarded-For
entry (Caddy, Traefik), then the socket peer.

The limit itself comes from Settings.rate_limit and is applied at startup
through configure_rate_limit(); an empty value switches limiting off.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

DEFAULT_LIMIT = "600/minute"

_current_limit = DEFAULT_LIMIT


def client_address(request: Request) -> str:
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    first = forwarded_for.split(",", 1)[0].strip()
    if first:
        return first
    return get_remote_address(request)


def current_limit() -> str:
    return _current_limit


def configure_rate_limit(rate_limit: str) -> None:
    """Set the per-client default limit, or disable limiting when empty."""
    global _current_limit
    if rate_limit:
        _current_limit = rate_limit
    limiter.enabled = bool(rate_limit)


# slowapi evaluates a callable default limit on every request.
limiter = Limiter(key_func=client_address, default_limits=[current_limit], storage_uri="memory://")
