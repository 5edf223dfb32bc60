"""Command-line interface for the audit management service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from audit_management.config import Settings, load_settings
from audit_management.database import Database
from audit_management.errors import DuplicateResourceError
from audit_management.service import UserService

logger = logging.getLogger("auditmanagement.main")

_KNOWN_COMMANDS = {"serve", "init-db", "list-users", "create-user"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to the YAML settings file (default: AUDIT_CONFIG_PATH or config/settings.yaml)",
    )

    parser = argparse.ArgumentParser(description="Audit management user service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", parents=[common], help="Initialise the user database")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 8081)",
    )

    subparsers.add_parser("list-users", parents=[common], help="Print every registered user")

    create_parser = subparsers.add_parser("create-user", parents=[common], help="Register a new user")
    create_parser.add_argument("username", help="Unique username (3-50 characters)")
    create_parser.add_argument("email", help="Unique email address")
    create_parser.add_argument("role", help="Role such as ADMIN or AUDITOR")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in _KNOWN_COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str | None, port: int | None) -> None:
    from audit_management.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting audit management API on http://%s:%s", bind_host, bind_port)

    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level)


def _list_users(service: UserService) -> None:
    users = service.list_all()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Username':<24}  {'Email':<32}  {'Role':<12}  Created")
    print("-" * 96)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z") if user.created_at else "-"
        print(f"{user.id:>4}  {user.username:<24}  {user.email:<32}  {user.role:<12}  {created}")


def _create_user(service: UserService, *, username: str, email: str, role: str) -> int:
    from audit_management.schemas import UserRequest

    try:
        request = UserRequest(username=username, email=email, role=role)
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ())) or "input"
            print(f"Invalid {field}: {error.get('msg')}", file=sys.stderr)
        return 1

    try:
        user = service.create(request.to_payload())
    except DuplicateResourceError as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.username} <{user.email}> ({user.role})")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings(Path(args.config).expanduser() if args.config else None)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "list-users":
        _list_users(UserService(database))
    elif args.command == "create-user":
        return _create_user(
            UserService(database),
            username=args.username,
            email=args.email,
            role=args.role,
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
