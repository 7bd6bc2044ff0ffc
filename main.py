#!/usr/bin/env python3
"""
Sessions -- credential/session service with a token-gated DNA subsequence lookup.

Usage:
  python main.py serve
  python main.py serve --api 0.0.0.0:8080
  python main.py serve --auth-urn sqlite:///auth.db --dna-urn sqlite:///dna.db
  python main.py serve --auth-urn memory:// --dna-urn memory://
  python main.py serve --auth-url http://127.0.0.1:8081   # validate tokens remotely

Environment variables (see core/config.py; flags take precedence):
  AUTH_URN, DNA_URN, AUTH_URL, SIGNUP_RATE, SIGNUP_BURST, LOGIN_RATE,
  LOGIN_BURST, LOGIN_WAIT_TIMEOUT, HTTP_RATE_LIMIT, HTTP_RATE_LIMIT_ENABLED, DEBUG
"""

import argparse
import os
import sys

import uvicorn


def _split_addr(addr: str) -> tuple[str, int]:
    """Parse "host:port" (host may be empty, meaning all interfaces)."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise argparse.ArgumentTypeError(f"'{addr}' is not a host:port address")
    return host or "0.0.0.0", int(port)  # noqa: S104 # nosec B104 -- explicit ":port" means all interfaces


def _apply_overrides(args: argparse.Namespace) -> None:
    """Export flag values as env vars so core.config picks them up.

    Must run before api.main is imported: get_settings() is read once and
    cached on first use.
    """
    overrides = {
        "AUTH_URN": args.auth_urn,
        "DNA_URN": args.dna_urn,
        "AUTH_URL": args.auth_url,
    }
    for key, value in overrides.items():
        if value is not None:
            os.environ[key] = value


def serve(args: argparse.Namespace) -> int:
    try:
        host, port = _split_addr(args.api)
    except argparse.ArgumentTypeError as e:
        print(f"  [!] {e}", file=sys.stderr)
        return 2
    _apply_overrides(args)
    uvicorn.run("asgi:app", host=host, port=port, reload=args.reload, log_level="info")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sessions",
        description="Credential/session service with a token-gated DNA subsequence lookup.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--api", default="127.0.0.1:8080", metavar="ADDR", help="HTTP API listen address")
    p_serve.add_argument("--auth-urn", default=None, metavar="URN", help="SQLAlchemy URL for the auth DB, or memory://")
    p_serve.add_argument("--dna-urn", default=None, metavar="URN", help="SQLAlchemy URL for the DNA DB, or memory://")
    p_serve.add_argument(
        "--auth-url",
        default=None,
        metavar="URL",
        help="Base URL of a remote session service used to validate tokens (default: in-process)",
    )
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    args = parser.parse_args(argv)
    if args.command == "serve":
        return serve(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
