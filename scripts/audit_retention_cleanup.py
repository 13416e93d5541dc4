from __future__ import annotations

import argparse
import os
import sys
from datetime import UTC, datetime, timedelta

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Purge old security audit log entries.")
    p.add_argument(
        "--days",
        type=int,
        default=int(os.getenv("AUDIT_RETENTION_DAYS", "90")),
        help="Retention window in days (default env AUDIT_RETENTION_DAYS or 90).",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Only count candidates, do not delete.",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.days < 1:
        print("days must be >= 1", file=sys.stderr)
        return 2

    from imobiliaria import create_app
    from imobiliaria.audit_repo import AuditRepo

    app = create_app()
    cutoff = datetime.now(UTC) - timedelta(days=args.days)
    with app.app_context():
        repo = AuditRepo()
        try:
            if args.dry_run:
                n = repo.count_before(cutoff)
                print(f"[DRY-RUN] would delete {n} audit log entries older than {cutoff.isoformat()}")
            else:
                deleted = repo.purge_before(cutoff)
                print(f"deleted {deleted} audit log entries older than {cutoff.isoformat()}")
            return 0
        except Exception as e:  # pragma: no cover
            print(f"error: {e}", file=sys.stderr)
            return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
