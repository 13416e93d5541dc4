from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.passwords import generate_secure_password, validate_password_strength
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Reset a user's password and clear any lockout")
    p.add_argument("identifier", nargs="?", default="admin", help="username or email (default: admin)")
    p.add_argument("--password", help="generated when omitted")
    args = p.parse_args(argv)

    password = args.password or generate_secure_password()
    problems = validate_password_strength(password)
    if problems:
        for msg in problems:
            print("Senha fraca:", msg, file=sys.stderr)
        return 2

    app = create_app()
    with app.app_context():
        repo = UserRepo()
        user = repo.find_for_login(args.identifier)
        if user is None:
            print(f"User not found: {args.identifier}")
            return 1
        repo.set_password(user.id, password, unlock=True)
        print(f"Password reset for {user.username} (id={user.id}); lockout cleared")
        if not args.password:
            print("New password:", password)
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
