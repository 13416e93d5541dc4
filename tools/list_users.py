from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.user_repo import UserRepo, is_locked


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="List user accounts")
    p.add_argument("--role", help="only show this role")
    args = p.parse_args(argv)

    app = create_app()
    with app.app_context():
        users = [u for u in UserRepo().list_all() if not args.role or u.role == args.role]
        print(f"USERS ({len(users)}):")
        for u in users:
            flags = []
            if not u.is_active:
                flags.append("inactive")
            if is_locked(u):
                flags.append("locked")
            print(f"{u.id:>4} {u.username:<24} {u.email:<32} {u.role:<18} {','.join(flags)}")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
