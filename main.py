#!/usr/bin/env python3
"""
Auth service admin CLI -- account and session maintenance against the configured database.

Usage:
  python main.py deactivate --email alice@example.com
  python main.py activate --email alice@example.com
  python main.py revoke-sessions --email alice@example.com
  python main.py purge-expired

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL of the auth database.
  SECRET_KEY     Required unless DEBUG=true. Not used for signing here, but
                 Settings validates it so a misconfigured host fails loudly.
"""

import argparse
import logging
import sys

from auth.store import RefreshTokenStore, UserStore, create_store_engine
from core.config import get_settings
from core.log import configure_logging

logger = logging.getLogger("authsvc.cli")


def _find_user(users: UserStore, email: str):
    user = users.find_user_by_email(email)
    if user is None:
        print(f"  [!] No user with email '{email}'.")
    return user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="authsvc",
        description="Account and session maintenance for the auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py deactivate --email alice@example.com
  python main.py revoke-sessions --email alice@example.com
  DATABASE_URL=postgresql+psycopg://... python main.py purge-expired
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this run",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("deactivate", "Deactivate an account. Login, refresh and /me stop working for it."),
        ("activate", "Re-activate a deactivated account."),
        ("revoke-sessions", "Delete every refresh token of an account (log out everywhere)."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--email", required=True, help="Email of the target account")

    sub.add_parser("purge-expired", help="Delete refresh tokens whose expiry has passed")

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)
    engine = create_store_engine(args.database_url or settings.database_url)
    users = UserStore(engine)
    refresh_tokens = RefreshTokenStore(engine)

    try:
        if args.command == "purge-expired":
            removed = refresh_tokens.purge_expired()
            print(f"  Purged {removed} expired refresh token(s).")
            return 0

        user = _find_user(users, args.email)
        if user is None:
            return 1
        if args.command == "revoke-sessions":
            removed = refresh_tokens.delete_all_for_user(user.id)
            print(f"  Revoked {removed} session(s) for {user.email}.")
        else:
            active = args.command == "activate"
            users.set_user_active(user.id, active)
            logger.info("Account user_id=%s set is_active=%s via CLI", user.id, active)
            print(f"  {user.email} is now {'active' if active else 'deactivated'}.")
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
