"""
api/main.py -- FastAPI application entry point for simpleauth.

A reverse proxy (Caddy forward_auth, nginx auth_request, Traefik
forwardAuth) sends every incoming request here before forwarding it:

    GET  /health      -- liveness + configuration summary (JSON)
    ANY  /{anything}  -- forward-auth decision (see auth/engine.py)

Run with:  python main.py --listen :8080
           uvicorn api.main:app

Middleware stack (outermost to innermost):
  1. log_requests      -- one access-log line per request with latency
  2. SlowAPIMiddleware -- default per-client rate limit from api.limiter

Lifespan builds the ForwardAuthEngine once from Settings. Secret, password
hashes and login page are immutable afterwards, so request handlers share
them without locks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import client_address, configure_rate_limit, limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from auth.dependencies import evaluate_request, get_engine, is_login_request
from auth.engine import OUTCOME_HEADER, USERNAME_HEADER
from core.config import get_settings
from core.sources import build_engine

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("simpleauth.api")

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine before the first request and keep it for the process lifetime.

    Settings come from app.state.settings when main.py injected them, else
    from the environment. main.py may have built the engine already (so
    configuration errors are reported before uvicorn starts); otherwise it
    is built here. A ConfigError raised here aborts startup.
    """
    settings = getattr(app.state, "settings", None) or get_settings()
    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    configure_rate_limit(settings.rate_limit)
    logger.info("simpleauth starting up")
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine(settings)
    app.state.started_at = time.monotonic()
    logger.info(
        "Engine ready (users=%d, cookie=%s, lifespan=%s)",
        len(app.state.engine.store),
        app.state.engine.cookie_name,
        app.state.engine.lifespan,
    )

    yield

    logger.info("simpleauth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="simpleauth",
    description="Stateless forward-authentication service with signed session cookies.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        client_address(request),
        response.headers.get(OUTCOME_HEADER, "-"),
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a client exceeds the default limit.

    Sync on purpose: SlowAPIMiddleware calls the registered handler directly
    and uses its return value as the response.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Registered before the catch-all so /health never reaches forward-auth.
# Accepts every method so non-GET gets a 405 here instead of falling
# through to the catch-all route.
# ---------------------------------------------------------------------------


def _format_uptime(seconds: float) -> str:
    """Format seconds the way Go prints a time.Duration, e.g. 1h2m3.5s."""
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    return out + f"{secs:.3f}".rstrip("0").rstrip(".") + "s"


@app.api_route("/health", methods=_ALL_METHODS, include_in_schema=False)
@limiter.exempt
def health(request: Request) -> Response:
    """Report whether users and the secret are loaded, plus process uptime."""
    if request.method != "GET":
        return PlainTextResponse("Method not allowed", status_code=405)

    engine = get_engine(request)
    body = HealthResponse(
        users=len(engine.store),
        secret_set=engine.secret_set,
        uptime=_format_uptime(time.monotonic() - request.app.state.started_at),
    )
    status_code = 200
    if body.users == 0:
        body = body.model_copy(update={"status": "unhealthy", "error": "no users configured"})
        status_code = 503
    if not body.secret_set:
        body = body.model_copy(update={"status": "unhealthy", "error": "secret not properly configured"})
        status_code = 503
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# Forward-auth endpoint
#
# Plain def, not async: FastAPI runs it in the thread pool, so bcrypt work
# for concurrent Basic logins runs in parallel instead of blocking the loop.
# ---------------------------------------------------------------------------


def _encode_header(name: str, value: str) -> tuple[bytes, bytes]:
    """Encode one decision header for the wire.

    The username is sent as UTF-8 bytes so any provisioned name survives;
    Starlette's own header API only accepts Latin-1.
    """
    encoding = "utf-8" if name == USERNAME_HEADER else "latin-1"
    return name.lower().encode("latin-1"), value.encode(encoding)


@app.api_route("/{path:path}", methods=_ALL_METHODS, include_in_schema=False)
def forward_auth(request: Request, path: str) -> Response:
    """Decide whether the proxied request may continue to the origin.

    200 lets the proxy forward; anything else is relayed to the client.
    """
    decision = evaluate_request(request)

    logger.debug(
        "%s %s %s://%s%s login:%s %s",
        client_address(request),
        request.headers.get("X-Forwarded-Method", "-"),
        request.headers.get("X-Forwarded-Proto", ""),
        request.headers.get("X-Forwarded-Host", ""),
        request.headers.get("X-Forwarded-Uri", ""),
        is_login_request(request),
        decision.header(OUTCOME_HEADER),
    )

    response = Response(content=decision.body, status_code=decision.status_code)
    response.raw_headers.extend(_encode_header(name, value) for name, value in decision.headers)
    return response
