#!/usr/bin/env python3
"""
simpleauth -- Stateless forward-authentication service.

Every flag defaults to its SIMPLEAUTH_* environment variable, then to the
built-in default, so container deployments can configure everything through
the environment and local runs through flags.

Usage:
  python main.py
  python main.py --listen :9000 --lifespan 24h
  python main.py --passwd ./passwd --secret ./simpleauth.key --html ./web
  python main.py --verbose
  python main.py --hash-password

Environment variables:
  SIMPLEAUTH_LISTEN         Bind address (default :8080)
  SIMPLEAUTH_LIFESPAN       Token lifetime, e.g. 2400h, 30d (default 2400h)
  SIMPLEAUTH_PASSWORD_FILE  Password file, one user:hash per line
  SIMPLEAUTH_USERS          "user1:hash1,user2:hash2" -- overrides the file
  SIMPLEAUTH_SECRET_FILE    File with at least 64 bytes of secret
  SIMPLEAUTH_SECRET         Base64 secret (>= 64 bytes) -- overrides the file
  SIMPLEAUTH_HTML_PATH      Directory containing login.html
  SIMPLEAUTH_VERBOSE        "true" for debug logging
  SIMPLEAUTH_RATE_LIMIT     Per-client limit, e.g. 600/minute; empty disables
"""

import argparse
import getpass
import logging
import sys

import uvicorn
from pydantic import ValidationError

from api.main import app
from auth.store import hash_password
from core.config import Settings, get_settings
from core.sources import ConfigError, build_engine

logger = logging.getLogger("simpleauth.cli")


def parse_listen(listen: str) -> tuple[str, int]:
    """Split a Go-style bind address (":8080", "127.0.0.1:8080", "[::1]:8080")."""
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address {listen!r} (expected [host]:port)")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def main() -> None:
    try:
        env_settings = get_settings()
    except ValidationError as e:
        print(f"  [!] Invalid SIMPLEAUTH_* environment: {e}", file=sys.stderr)
        sys.exit(2)

    parser = argparse.ArgumentParser(
        prog="simpleauth",
        description="Stateless forward-authentication service with signed session cookies.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --listen :8080
  python main.py --lifespan 24h --passwd /etc/simpleauth/passwd
  SIMPLEAUTH_USERS='alice:$2b$12$...' python main.py --verbose
  python main.py --hash-password >> passwd
        """,
    )
    parser.add_argument(
        "--listen",
        default=env_settings.listen,
        metavar="ADDR",
        help="Bind address for incoming HTTP connections (default: %(default)s)",
    )
    parser.add_argument(
        "--lifespan",
        default=None,
        metavar="DURATION",
        help="How long an issued token is valid, e.g. 100h, 30d (default: SIMPLEAUTH_LIFESPAN or 2400h)",
    )
    parser.add_argument(
        "--passwd",
        default=env_settings.password_file,
        metavar="PATH",
        help="Path to a file containing user:hash lines (default: %(default)s)",
    )
    parser.add_argument(
        "--secret",
        default=env_settings.secret_file,
        metavar="PATH",
        help="Path to a file containing at least 64 bytes of secret (default: %(default)s)",
    )
    parser.add_argument(
        "--html",
        default=env_settings.html_path,
        metavar="PATH",
        help="Directory containing login.html (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=env_settings.verbose,
        help="Print verbose logs, for debugging",
    )
    parser.add_argument(
        "--hash-password",
        action="store_true",
        help="Prompt for a password, print its bcrypt hash and exit",
    )
    args = parser.parse_args()

    if args.hash_password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            parser.error("passwords do not match")
        try:
            print(hash_password(password))
        except ValueError as e:
            # bcrypt 5 rejects passwords longer than 72 bytes
            parser.error(f"cannot hash password: {e}")
        return

    overrides = {
        "listen": args.listen,
        "password_file": args.passwd,
        "secret_file": args.secret,
        "html_path": args.html,
        "verbose": args.verbose,
    }
    if args.lifespan is not None:
        overrides["lifespan"] = args.lifespan
    try:
        settings = Settings(**overrides)
        host, port = parse_listen(settings.listen)
    except (ValidationError, ValueError) as e:
        parser.error(str(e))

    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Fail before binding the port: a bad secret or empty user list is fatal.
    try:
        app.state.engine = build_engine(settings)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)
    app.state.settings = settings

    logger.info("listening on %s", settings.listen)
    uvicorn.run(app, host=host, port=port, log_level="debug" if settings.verbose else "info")


if __name__ == "__main__":
    main()
