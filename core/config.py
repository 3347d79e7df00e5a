"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for simpleauth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads SIMPLEAUTH_* environment variables
      and an optional .env file. Field names map to env var names with the
      prefix (e.g. secret_file -> SIMPLEAUTH_SECRET_FILE).

  @field_validator: lifespan accepts Go-style durations ("2400h", "1h30m",
      "30d") because that is what existing deployments already set.

Settings only describes where secrets live. Reading and checking the secret,
the password list and the login page is core/sources.py's job.

Layer rule: this module imports nothing from the rest of the project.
"""

import logging
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from limits import parse_many
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("simpleauth.config")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(d|h|m|s)")
_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as "2400h", "1h30m", "90s" or "30d".

    Raises ValueError on anything else, including an empty string.
    """
    text = value.strip()
    if not text:
        raise ValueError("duration must not be empty")
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r} (expected e.g. 2400h, 1h30m, 30d)")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. CLI flags in main.py override
    these by constructing Settings(**overrides).
    """

    model_config = SettingsConfigDict(
        env_prefix="SIMPLEAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    listen: str = ":8080"
    verbose: bool = False
    html_path: Path = Path("web")
    # Per-client limit in slowapi syntax, e.g. "600/minute". Empty disables it.
    rate_limit: str = "600/minute"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    lifespan: timedelta = timedelta(hours=2400)
    cookie_name: str = "simpleauth-token"
    # Emitted only for "credentials accepted, cookie attached, retry".
    token_delivered_status: int = 418

    # ------------------------------------------------------------------
    # Secret and credentials -- env values win over files
    # ------------------------------------------------------------------

    # Base64 (standard alphabet). Empty string means "use secret_file".
    secret: str = ""
    secret_file: Path = Path("/run/secrets/simpleauth.key")
    # "user1:hash1,user2:hash2". Empty string means "use password_file".
    users: str = ""
    password_file: Path = Path("/run/secrets/passwd")

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("lifespan", mode="before")
    @classmethod
    def parse_lifespan(cls, value):
        """Accept Go-style duration strings on top of pydantic's own formats."""
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("lifespan")
    @classmethod
    def lifespan_positive(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("lifespan must be positive")
        return value

    @field_validator("cookie_name")
    @classmethod
    def cookie_name_token(cls, value: str) -> str:
        if not value or re.search(r"[\s;,=\"]", value):
            raise ValueError("cookie_name must be a non-empty cookie token")
        return value


    @field_validator("rate_limit")
    @classmethod
    def rate_limit_syntax(cls, value: str) -> str:
        value = value.strip()
        if value:
            parse_many(value)
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
