"""
Create an admin account for the park website.

Creates the Firebase Auth user and marks it as admin in the users
collection. Uses the backends configured through the environment (see
site_backend.config).
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from site_backend.auth import AuthError, admin_exists, create_admin_user
from site_backend.dependencies import get_auth_client, get_db_client


logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--email", required=True, help="Email of the new admin")
    parser.add_argument(
        "--password",
        default=None,
        help="Password of the new admin (prompted for when omitted)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Create the user even if an admin already exists",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    db = get_db_client()

    if admin_exists(db) and not args.force:
        logger.error("Admin user already exists. Use --force to add another one.")
        return 1

    password = args.password or getpass.getpass("Password: ")
    try:
        user = create_admin_user(get_auth_client(), db, args.email, password)
    except AuthError as e:
        logger.error("Could not create admin user: %s", e)
        return 1

    logger.info("Admin user created: %s (%s)", user.email, user.id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
