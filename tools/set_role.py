from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.roles import ROLES
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Change a user's role")
    p.add_argument("identifier", help="username or email")
    p.add_argument("--role", default="real-estate-agent", choices=list(ROLES))
    args = p.parse_args(argv)

    app = create_app()
    with app.app_context():
        repo = UserRepo()
        user = repo.find_for_login(args.identifier)
        if user is None:
            print(f"User not found: {args.identifier}")
            return 1
        if user.role == args.role:
            print(f"{user.username} already has role {args.role}")
            return 0
        repo.update_user(user.id, {"role": args.role})
        print(f"{user.username}: {user.role} -> {args.role}")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
