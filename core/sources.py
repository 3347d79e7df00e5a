"""
core/sources.py -- Startup-time loaders for the secret, credentials and login page.

Everything here runs once before the server accepts requests. Any problem
is raised as ConfigError, which is fatal: the lifespan (or the CLI) logs it
once and the process exits. Nothing in this module is called per request.

Lookup order (environment first, then files):
  secret       SIMPLEAUTH_SECRET (base64)  ->  SIMPLEAUTH_SECRET_FILE
  credentials  SIMPLEAUTH_USERS            ->  SIMPLEAUTH_PASSWORD_FILE
  login page   <SIMPLEAUTH_HTML_PATH>/login.html

The secret and password hashes are never logged -- only counts and sources.

Layer rule: core/ may not import from api/. Scheme detection comes from
auth/store.py so bad entries are reported here, at load time, instead of
silently failing every login.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path

from auth.engine import SECRET_SIZE, ForwardAuthEngine
from auth.store import CredentialStore, identify_scheme
from core.config import Settings

logger = logging.getLogger("simpleauth.config")


class ConfigError(ValueError):
    """Startup configuration is unusable. Fatal to the process."""


# ---------------------------------------------------------------------------
# Secret
# ---------------------------------------------------------------------------


def load_secret(settings: Settings) -> bytes:
    """Return the first 64 bytes of the configured secret.

    SIMPLEAUTH_SECRET (base64) wins over the secret file. Either source must
    provide at least 64 bytes.
    """
    if settings.secret:
        try:
            decoded = base64.b64decode(settings.secret, validate=True)
        except binascii.Error as e:
            raise ConfigError(f"invalid SIMPLEAUTH_SECRET: {e}") from e
        if len(decoded) < SECRET_SIZE:
            raise ConfigError(f"SIMPLEAUTH_SECRET must be at least {SECRET_SIZE} bytes (got {len(decoded)})")
        logger.debug("Using SIMPLEAUTH_SECRET environment variable")
        return decoded[:SECRET_SIZE]

    path = settings.secret_file
    if not path.is_file():
        raise ConfigError(f"secret not configured (no SIMPLEAUTH_SECRET env var and no file at {path})")
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ConfigError(f"could not read secret file {path}: {e}") from e
    if len(content) < SECRET_SIZE:
        raise ConfigError(f"secret file at {path} must be at least {SECRET_SIZE} bytes (got {len(content)})")
    logger.debug("Using secret file: %s", path)
    return content[:SECRET_SIZE]


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def parse_users_env(raw: str) -> dict[str, str]:
    """Parse "user1:hash1,user2:hash2" into a mapping.

    Splits each pair on the first colon and trims whitespace. Malformed
    pairs are logged and skipped.
    """
    users: dict[str, str] = {}
    for pair in raw.split(","):
        if not pair.strip():
            continue
        username, sep, hashed = pair.partition(":")
        username, hashed = username.strip(), hashed.strip()
        if not sep or not username or not hashed:
            logger.warning("invalid user entry in SIMPLEAUTH_USERS, expected 'username:hash'")
            continue
        users[username] = hashed
    return users


def parse_password_file(path: Path) -> dict[str, str]:
    """Parse an htpasswd-style file: one "user:hash" per line.

    Extra colon-separated fields after the hash are ignored; lines with fewer
    than two fields (blank lines, comments without a colon) are skipped.
    """
    users: dict[str, str] = {}
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            parts = line.rstrip("\r\n").split(":")
            if len(parts) >= 2 and parts[0] and not parts[0].startswith("#"):
                users[parts[0]] = parts[1]
    return users


def load_credentials(settings: Settings) -> dict[str, str]:
    """Load username -> hash from SIMPLEAUTH_USERS or the password file.

    Entries whose hash scheme is not recognized are reported and dropped.
    An empty result is a ConfigError: a server nobody can log into is
    misconfigured.
    """
    if settings.users:
        raw = parse_users_env(settings.users)
        source = "SIMPLEAUTH_USERS environment variable"
    else:
        path = settings.password_file
        if not path.is_file():
            raise ConfigError(f"no SIMPLEAUTH_USERS env var and no password file at {path}")
        try:
            raw = parse_password_file(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"could not read password file {path}: {e}") from e
        source = f"password file {path}"

    users: dict[str, str] = {}
    for username, hashed in raw.items():
        if identify_scheme(hashed) is None:
            if "$" not in hashed:
                logger.warning(
                    "unsupported hash for user %r: if the hash came from an environment variable, "
                    "check that the dollar signs were quoted",
                    username,
                )
            else:
                logger.warning("unsupported hash scheme for user %r, entry ignored", username)
            continue
        users[username] = hashed

    if not users:
        raise ConfigError(f"no usable credentials loaded from {source}")
    logger.info("Loaded %d users from %s", len(users), source)
    return users


# ---------------------------------------------------------------------------
# Login page
# ---------------------------------------------------------------------------


def load_login_page(settings: Settings) -> bytes:
    """Return the bytes of <html_path>/login.html, served verbatim on every non-200."""
    path = settings.html_path / "login.html"
    try:
        return path.read_bytes()
    except OSError as e:
        raise ConfigError(f"could not read login page {path}: {e}") from e


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_engine(settings: Settings) -> ForwardAuthEngine:
    """Load every startup input and construct the decision engine.

    Raises ConfigError for anything the loaders reject and for engine
    parameters the engine itself refuses (e.g. a 2xx reserved status).
    """
    secret = load_secret(settings)
    credentials = load_credentials(settings)
    login_page = load_login_page(settings)
    try:
        return ForwardAuthEngine(
            secret,
            CredentialStore(credentials),
            login_page,
            cookie_name=settings.cookie_name,
            lifespan=settings.lifespan,
            token_delivered_status=settings.token_delivered_status,
        )
    except ValueError as e:
        raise ConfigError(str(e)) from e
