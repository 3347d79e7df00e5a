"""
auth/dependencies.py -- FastAPI request adapters for the forward-auth engine.

The engine works on plain header values. These helpers pull those values
out of a Starlette/FastAPI Request so route code stays a thin shell:

    classify_request(request)   -> ClassificationResult
    evaluate_request(request)   -> Decision

Request signals read here:
  Authorization          -- Basic credentials (optional)
  Cookie                 -- every Cookie header, duplicates preserved
  X-Simpleauth-Login     -- "true" marks a login call that may mint a token
  X-Simpleauth-Domain    -- Domain attribute for an issued cookie
  Accept                 -- contains text/html for browsers

Layer rule: may import from fastapi/starlette and auth/. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.engine import DOMAIN_HEADER, LOGIN_HEADER, Decision, ForwardAuthEngine
from auth.models import ClassificationResult


def get_engine(request: Request) -> ForwardAuthEngine:
    return request.app.state.engine


def is_login_request(request: Request) -> bool:
    return request.headers.get(LOGIN_HEADER) == "true"


def is_browser_request(request: Request) -> bool:
    return "text/html" in request.headers.get("Accept", "")


def classify_request(request: Request) -> ClassificationResult:
    """Classify the request without deciding on a response.

    Never raises for bad credentials -- anything unusable is Unauthenticated.
    """
    engine = get_engine(request)
    return engine.classify(request.headers.get("Authorization"), request.headers.getlist("Cookie"))


def evaluate_request(request: Request) -> Decision:
    """Run the full forward-auth decision for a request."""
    engine = get_engine(request)
    return engine.decide(
        classify_request(request),
        is_login=is_login_request(request),
        cookie_domain=request.headers.get(DOMAIN_HEADER) or None,
        browser=is_browser_request(request),
    )
