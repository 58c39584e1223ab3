"""
Grant or revoke payment-review access.

Usage:
    python -m sentient.scripts.grant_admin <user_id> [--role super_admin]
    python -m sentient.scripts.grant_admin <user_id> --revoke
"""
import argparse
from typing import List, Optional

from sentient.core.admin_auth import ADMIN_ROLES
from sentient.core.database import create_all_tables, get_db_session, init_engine
from sentient.features.admin.service import grant_admin, revoke_admin


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Grant or revoke admin access for a user.")
    parser.add_argument("user_id", help="Identity user id (profiles.id).")
    parser.add_argument("--role", choices=ADMIN_ROLES, default="admin")
    parser.add_argument("--revoke", action="store_true", help="Remove the user's admin row.")
    parser.add_argument("--database-url", dest="database_url", help="Override DATABASE_URL.")
    parser.add_argument("--create-tables", dest="create_tables", action="store_true", help="Create missing tables first.")
    args = parser.parse_args(argv)

    init_engine(args.database_url)
    if args.create_tables:
        create_all_tables()

    with get_db_session() as session:
        if args.revoke:
            removed = revoke_admin(session, args.user_id)
            print(f"revoked {args.user_id}" if removed else f"{args.user_id} was not an admin")
        else:
            grant_admin(session, args.user_id, args.role)
            print(f"granted {args.role} to {args.user_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
