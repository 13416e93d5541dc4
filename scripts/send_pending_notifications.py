"""Dispatch pending notifications (run from cron).

With ``--processar`` the daily due-date run happens first: overdue payments
are flagged and the reminder/expiry notifications for the day are created.
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Mark pending notifications as sent, oldest first.")
    p.add_argument("--limit", type=int, default=100, help="maximum notifications per run (default 100)")
    p.add_argument("--processar", action="store_true", help="generate due-date notifications before sending")
    p.add_argument("--data", help="reference date for --processar (YYYY-MM-DD, default today)")
    args = p.parse_args(argv)
    if args.limit < 1:
        print("limit must be >= 1", file=sys.stderr)
        return 2
    hoje = None
    if args.data:
        try:
            hoje = date.fromisoformat(args.data)
        except ValueError:
            print(f"invalid date: {args.data}", file=sys.stderr)
            return 2

    from imobiliaria import create_app
    from imobiliaria.notificacao_service import NotificacaoService

    app = create_app()
    with app.app_context():
        service = NotificacaoService()
        if args.processar:
            resultado = service.processar_notificacoes(hoje=hoje)
            detalhes = ", ".join(f"{k}={v}" for k, v in resultado["detalhes"].items())
            print(f"processed {resultado['data_referencia']}: created {resultado['notificacoes_criadas']} ({detalhes})")
        sent = service.enviar_pendentes(limit=args.limit)
    print(f"sent {sent} notifications")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
