"""Clear login throttles and account lockouts.

Only meaningful with a shared limiter backend (database / redis); the memory
backend lives inside each server process.
"""

from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.throttling import LoginThrottle
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Clear login rate limits and lockouts")
    p.add_argument("--ip", help="only clear this client IP")
    p.add_argument("--username", help="only clear this account (also unlocks it)")
    args = p.parse_args(argv)

    app = create_app()
    with app.app_context():
        throttle = LoginThrottle.from_app()
        repo = UserRepo()
        if args.ip is None and args.username is None:
            removed = throttle.clear()
            unlocked = repo.unlock_all()
            print(f"Cleared {removed} throttle entries; unlocked {unlocked} accounts")
            return 0
        removed = throttle.clear(ip=args.ip, username=args.username.lower() if args.username else None)
        print(f"Cleared {removed} throttle entries")
        if args.username:
            user = repo.find_for_login(args.username)
            if user is None:
                print(f"User not found: {args.username}")
                return 1
            repo.unlock(user.id)
            print(f"Unlocked {user.username}")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
