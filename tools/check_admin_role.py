from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.roles import permissions_for
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Report a user's role and optionally promote it to admin")
    p.add_argument("identifier", help="username or email")
    p.add_argument("--fix", action="store_true", help="set role=admin when it is not already")
    args = p.parse_args(argv)

    app = create_app()
    with app.app_context():
        repo = UserRepo()
        user = repo.find_for_login(args.identifier)
        if user is None:
            print(f"User not found: {args.identifier}")
            return 2
        perms = permissions_for(user.role)
        print(f"User id: {user.id} username: {user.username} email: {user.email}")
        print(f"Role: {user.role} active: {user.is_active} permissions: {len(perms)}")
        if user.role == "admin":
            print("OK: user is admin")
            return 0
        if not args.fix:
            print("User is not admin (use --fix to promote)")
            return 1
        repo.update_user(user.id, {"role": "admin"})
        print("Role updated to admin")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
