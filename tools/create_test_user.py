"""Create a throwaway real-estate agent account for manual testing."""

from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from imobiliaria import create_app
from imobiliaria.passwords import generate_secure_password
from imobiliaria.user_repo import UserRepo


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Create a test agent user")
    p.add_argument("--username", default="corretor.teste")
    p.add_argument("--email", default="corretor.teste@example.com")
    p.add_argument("--password", help="generated when omitted")
    p.add_argument("--role", default="real-estate-agent", choices=["admin", "real-estate-agent"])
    args = p.parse_args(argv)

    password = args.password or generate_secure_password()
    app = create_app()
    with app.app_context():
        repo = UserRepo()
        if repo.username_taken(args.username.lower()) or repo.email_taken(args.email.lower()):
            print(f"User already exists: {args.username}")
            return 1
        user = repo.create_user(
            username=args.username.lower(),
            email=args.email.lower(),
            password=password,
            full_name="Usuário de Teste",
            role=args.role,
        )
        print(f"Created {user.role} {user.username} (id={user.id})")
        if not args.password:
            print("Password:", password)
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
