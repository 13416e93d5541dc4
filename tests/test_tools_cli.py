"""Maintenance CLIs run in-process against the shared test database.

Each tool builds its own app via create_app(); the engine initialized by the
session fixture is reused because the tools never force a re-init.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from conftest import AGENT_PASSWORD, login
from scripts.audit_retention_cleanup import main as audit_cleanup_main
from scripts.seed_database import main as seed_main
from scripts.send_pending_notifications import main as send_pending_main
from tools.check_admin_role import main as check_admin_main
from tools.clear_rate_limit import main as clear_rate_limit_main
from tools.create_admin_user import main as create_admin_main
from tools.create_test_user import main as create_test_user_main
from tools.db_verify import main as db_verify_main
from tools.list_users import main as list_users_main
from tools.reset_admin_password import main as reset_password_main
from tools.set_role import main as set_role_main


def _name(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def test_db_verify_ok(capsys):
    assert db_verify_main([]) == 0
    assert "tables verified" in capsys.readouterr().out


def test_create_admin_and_check_role(app, capsys):
    username = _name("adm")
    rc = create_admin_main(["--username", username, "--email", f"{username}@example.com", "--password", "Adm1n!Secure"])
    assert rc == 0
    assert f"Created admin {username}" in capsys.readouterr().out
    login(app.test_client(), username, "Adm1n!Secure")

    # running again updates the existing account instead of failing
    assert create_admin_main(["--username", username, "--email", f"{username}@example.com", "--password", "N0vo!Admin"]) == 0
    assert check_admin_main([username]) == 0
    assert "OK: user is admin" in capsys.readouterr().out


def test_create_admin_rejects_weak_password(capsys):
    assert create_admin_main(["--username", _name("adm"), "--email", "x@example.com", "--password", "fraca"]) == 2
    assert "Senha fraca" in capsys.readouterr().err


def test_create_test_user_and_set_role(capsys):
    username = _name("corretor")
    assert create_test_user_main(["--username", username, "--email", f"{username}@example.com"]) == 0
    out = capsys.readouterr().out
    assert f"Created real-estate-agent {username}" in out
    assert "Password:" in out
    assert create_test_user_main(["--username", username, "--email", f"{username}@example.com"]) == 1

    assert check_admin_main([username]) == 1
    assert check_admin_main([username, "--fix"]) == 0
    assert "Role updated to admin" in capsys.readouterr().out
    assert set_role_main([username, "--role", "real-estate-agent"]) == 0
    assert f"{username}: admin -> real-estate-agent" in capsys.readouterr().out
    assert set_role_main(["nao_existe_" + uuid.uuid4().hex[:6]]) == 1


def test_list_users_by_role(make_user, capsys):
    user, _ = make_user("admin")
    assert list_users_main(["--role", "admin"]) == 0
    out = capsys.readouterr().out
    assert user.username in out
    assert "real-estate-agent" not in out


def test_reset_password_unlocks(app, make_user, capsys):
    from imobiliaria.user_repo import UserRepo

    user, _ = make_user()
    with app.app_context():
        UserRepo().record_failed_login(user.id, max_attempts=1, lock_minutes=15)
    assert reset_password_main([user.username, "--password", "Res3t!Pass"]) == 0
    assert "lockout cleared" in capsys.readouterr().out
    login(app.test_client(), user.username, "Res3t!Pass")
    assert reset_password_main(["nao_existe_" + uuid.uuid4().hex[:6], "--password", "Res3t!Pass"]) == 1


def test_clear_rate_limit(client, make_user, capsys):
    user, _ = make_user()
    for _ in range(3):
        client.post("/api/auth/login", json={"username": user.username, "password": "Errada!123"})
    assert client.post("/api/auth/login", json={"username": user.username, "password": AGENT_PASSWORD}).status_code == 429

    assert clear_rate_limit_main(["--username", user.username, "--ip", "127.0.0.1"]) == 0
    out = capsys.readouterr().out
    assert "Cleared 2 throttle entries" in out
    assert f"Unlocked {user.username}" in out
    assert client.post("/api/auth/login", json={"username": user.username, "password": AGENT_PASSWORD}).status_code == 200

    assert clear_rate_limit_main([]) == 0
    assert "unlocked" in capsys.readouterr().out
    assert clear_rate_limit_main(["--username", "nao_existe_" + uuid.uuid4().hex[:6]]) == 1


def test_audit_retention_cleanup(app, capsys):
    from imobiliaria.audit_repo import AuditRepo

    old = datetime.now(UTC) - timedelta(days=200)
    with app.app_context():
        AuditRepo().insert(
            event_type="login_attempt",
            severity="low",
            user_id=None,
            username="antigo",
            ip_address="10.0.0.1",
            user_agent=None,
            details=None,
            request_id=None,
            ts=old,
        )
    assert audit_cleanup_main(["--days", "0"]) == 2
    assert audit_cleanup_main(["--days", "180", "--dry-run"]) == 0
    assert "[DRY-RUN] would delete 1 " in capsys.readouterr().out
    assert audit_cleanup_main(["--days", "180"]) == 0
    assert "deleted 1 " in capsys.readouterr().out
    with app.app_context():
        assert AuditRepo().count_before(datetime.now(UTC) - timedelta(days=180)) == 0


def test_send_pending_notifications(client_agent, capsys):
    payload = {"tipo": "lembrete_cobranca", "titulo": "Lembrete", "mensagem": "Cobrança pendente", "prioridade": "baixa"}
    n = client_agent.post("/api/notificacoes/", json=payload).get_json()["item"]
    assert send_pending_main(["--limit", "0"]) == 2
    assert send_pending_main(["--limit", "1000"]) == 0
    assert "sent" in capsys.readouterr().out
    item = client_agent.get(f"/api/notificacoes/{n['id']}").get_json()["item"]
    assert item["status"] == "enviada"
    assert item["data_envio"] is not None


def test_send_pending_processes_due_dates_first(app, capsys):
    assert send_pending_main(["--processar", "--data", "31/12/2026"]) == 2
    assert "invalid date" in capsys.readouterr().err
    hoje = datetime.now(UTC).date().isoformat()
    assert send_pending_main(["--processar", "--data", hoje, "--limit", "1000"]) == 0
    out = capsys.readouterr().out
    assert f"processed {hoje}: created" in out
    assert "pagamentos_marcados_atrasados=" in out
    assert "sent" in out


def test_seed_is_idempotent(client, capsys):
    assert seed_main([]) == 0
    first = capsys.readouterr().out
    assert first.startswith("seeded:")
    assert seed_main([]) == 0
    assert capsys.readouterr().out.strip() == "seeded: cidades=0, clientes=0, imoveis=0"
    nomes = [c["nome"] for c in client.get("/api/public/cidades").get_json()["items"]]
    assert "Florianópolis" in nomes
