from __future__ import annotations

import argparse
import getpass
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.db import create_all
from imobiliaria.passwords import validate_password_strength
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Create (or promote) an admin account")
    p.add_argument("--username", default="admin")
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="prompted when omitted")
    p.add_argument("--full-name", default="Administrador")
    p.add_argument("--create-tables", action="store_true", help="create missing tables first (dev only)")
    args = p.parse_args(argv)

    password = args.password or getpass.getpass("Senha: ")
    problems = validate_password_strength(password)
    if problems:
        for msg in problems:
            print("Senha fraca:", msg, file=sys.stderr)
        return 2

    app = create_app()
    with app.app_context():
        if args.create_tables:
            create_all()
        repo = UserRepo()
        existing = repo.find_for_login(args.username) or repo.find_for_login(args.email)
        if existing is not None:
            repo.update_user(existing.id, {"role": "admin", "is_active": True})
            repo.set_password(existing.id, password, unlock=True)
            print(f"Updated existing user {existing.username} (id={existing.id}) as admin")
            return 0
        user = repo.create_user(
            username=args.username.lower(),
            email=args.email.lower(),
            password=password,
            full_name=args.full_name,
            role="admin",
        )
        print(f"Created admin {user.username} (id={user.id})")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
