#!/usr/bin/env python3
"""
KSMS -- Kubernetes Security Monitoring System.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py create-user --email admin@example.com --role Administrator
  python main.py create-user --email ops@example.com --role "Security Analyst" --first-name Ops

create-user is the bootstrap path for the first administrator: self
registration through the API cannot be gated on an administrator before one
exists. The password is read from a prompt (or KSMS_PASSWORD for scripts).

Environment variables:
  SECRET_KEY    Session signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL  Durable store URL. Otherwise built from DB_HOST, DB_PORT, DB_USER,
                DB_PASSWORD, DB_NAME (PostgreSQL). Unreachable -> in-memory store.
"""

import argparse
import getpass
import os
import sys

from auth.models import DEFAULT_ROLE, Role, User
from auth.tokens import hash_password
from core.config import get_settings
from core.errors import KsmsError
from storage import MemoryStorage, open_storage


def _create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    role = Role(args.role)
    password = os.environ.get("KSMS_PASSWORD") or getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return 2

    storage = open_storage(settings)
    try:
        if isinstance(storage, MemoryStorage):
            print("  [!] Database unreachable -- refusing to create a user that would be lost on exit.")
            return 1
        user = storage.add_user(
            User(
                email=args.email,
                hashed_password=hash_password(password),
                first_name=args.first_name,
                last_name=args.last_name,
                role=role,
            )
        )
    except KsmsError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        storage.close()

    print(f"  Created {user.role.value} {user.email} (id {user.id})")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ksms",
        description="KSMS -- security monitoring console for Kubernetes clusters.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development).")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create an account directly in the durable store.")
    create.add_argument("--email", required=True)
    create.add_argument("--role", default=DEFAULT_ROLE.value, choices=[r.value for r in Role if r is not Role.anonymous])
    create.add_argument("--first-name", default="")
    create.add_argument("--last-name", default="")
    create.set_defaults(func=_create_user)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
