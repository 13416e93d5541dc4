import uuid
from datetime import UTC, date, datetime, timedelta

import pytest


def _today() -> date:
    return datetime.now(UTC).date()


@pytest.fixture
def clientes(client_admin):
    def _make(prefix):
        r = client_admin.post("/api/clientes/", json={"nome": f"{prefix} {uuid.uuid4().hex[:6]}"})
        assert r.status_code == 201, r.get_json()
        return r.get_json()["item"]

    return {"inquilino": _make("Inquilino"), "proprietario": _make("Proprietário")}


@pytest.fixture
def make_contrato(client_admin, make_imovel, clientes):
    def _make(client=None, **overrides):
        hoje = _today()
        payload = {
            "imovel_id": make_imovel()["id"],
            "inquilino_id": clientes["inquilino"]["id"],
            "proprietario_id": clientes["proprietario"]["id"],
            "valor_aluguel": 2500,
            "valor_deposito": 5000,
            "data_inicio": (hoje - timedelta(days=300)).isoformat(),
            "data_fim": (hoje + timedelta(days=400)).isoformat(),
        }
        payload.update(overrides)
        r = (client or client_admin).post("/api/contratos/", json=payload)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["item"]

    return _make


@pytest.fixture
def make_pagamento(client_admin):
    def _make(contrato_id, vencimento, mes=None, **overrides):
        payload = {
            "contrato_id": contrato_id,
            "mes_referencia": (mes or vencimento).isoformat(),
            "valor_devido": 2500,
            "data_vencimento": vencimento.isoformat(),
        }
        payload.update(overrides)
        r = client_admin.post("/api/pagamentos/", json=payload)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["item"]

    return _make


def _processar(client_admin, hoje=None):
    r = client_admin.post(
        "/api/pagamentos/processar-vencimentos", json={"dataReferencia": (hoje or _today()).isoformat()}
    )
    assert r.status_code == 200, r.get_json()
    return r.get_json()["data"]


def _notificacoes(client, contrato_id, tipo=None):
    url = f"/api/notificacoes/?contrato_id={contrato_id}&limit=100"
    if tipo:
        url += f"&tipo={tipo}"
    return client.get(url).get_json()["items"]


# ---- contratos ----


def test_contrato_crud(client_agent, make_contrato):
    c = make_contrato(client=client_agent, dia_vencimento=5)
    assert c["status"] == "ativo"
    assert c["dia_vencimento"] == 5
    assert c["user_id"] == client_agent.user.id
    assert c["inquilino"]["nome"].startswith("Inquilino")

    got = client_agent.get(f"/api/contratos/{c['id']}").get_json()["item"]
    assert got["data_fim"] == c["data_fim"]

    r = client_agent.put(f"/api/contratos/{c['id']}", json={"valor_aluguel": "2750.50", "observacoes": "Reajuste"})
    assert r.status_code == 200
    assert r.get_json()["item"]["valor_aluguel"] == 2750.5

    items = client_agent.get(f"/api/contratos/?imovel_id={c['imovel_id']}").get_json()["items"]
    assert [i["id"] for i in items] == [c["id"]]
    assert client_agent.get("/api/contratos/999999").status_code == 404


def test_contrato_defaults_dia_vencimento(make_contrato):
    assert make_contrato()["dia_vencimento"] == 10


def test_contrato_validation(client_admin, make_imovel, clientes):
    r = client_admin.post("/api/contratos/", json={})
    assert r.status_code == 422
    fields = {e["field"] for e in r.get_json()["errors"]}
    assert {"imovel_id", "inquilino_id", "valor_aluguel", "data_inicio", "data_fim"} <= fields

    r = client_admin.post(
        "/api/contratos/",
        json={
            "imovel_id": make_imovel()["id"],
            "inquilino_id": clientes["inquilino"]["id"],
            "valor_aluguel": 1000,
            "data_inicio": "2025-06-01",
            "data_fim": "2025-06-01",
            "dia_vencimento": 32,
        },
    )
    assert r.status_code == 422
    codes = {(e["field"], e["code"]) for e in r.get_json()["errors"]}
    assert ("data_fim", "INVALID_DATE_RANGE") in codes
    assert any(f == "dia_vencimento" for f, _ in codes)

    r = client_admin.post(
        "/api/contratos/",
        json={
            "imovel_id": make_imovel()["id"],
            "inquilino_id": clientes["inquilino"]["id"],
            "valor_aluguel": 1000,
            "data_inicio": "01/06/2025",
            "data_fim": "2026-06-01",
        },
    )
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["field"] == "data_inicio"


def test_update_checks_date_range_against_stored_dates(client_admin, make_contrato):
    c = make_contrato()
    r = client_admin.put(f"/api/contratos/{c['id']}", json={"data_fim": c["data_inicio"]})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "INVALID_DATE_RANGE"


def test_imovel_must_be_available_for_rent(client_admin, make_imovel, clientes):
    venda = make_imovel(finalidade="venda", valor_venda=500000)
    r = client_admin.post(
        "/api/contratos/",
        json={
            "imovel_id": venda["id"],
            "inquilino_id": clientes["inquilino"]["id"],
            "valor_aluguel": 1000,
            "data_inicio": "2025-01-01",
            "data_fim": "2026-01-01",
        },
    )
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "NOT_AVAILABLE"

    r = client_admin.post(
        "/api/contratos/",
        json={
            "imovel_id": make_imovel()["id"],
            "inquilino_id": 999999,
            "valor_aluguel": 1000,
            "data_inicio": "2025-01-01",
            "data_fim": "2026-01-01",
        },
    )
    assert r.status_code == 422
    assert r.get_json()["errors"][0] == {
        "field": "inquilino_id",
        "message": "Inquilino não encontrado",
        "code": "NOT_FOUND",
    }


def test_single_active_contract_per_imovel(client_admin, make_contrato):
    first = make_contrato()
    payload = {
        "imovel_id": first["imovel_id"],
        "inquilino_id": first["inquilino_id"],
        "valor_aluguel": 1800,
        "data_inicio": "2027-01-01",
        "data_fim": "2028-01-01",
    }
    assert client_admin.post("/api/contratos/", json=payload).status_code == 409

    # a suspended contract does not block a new one
    r = client_admin.post("/api/contratos/", json={**payload, "status": "suspenso"})
    assert r.status_code == 201
    suspenso = r.get_json()["item"]
    assert client_admin.put(f"/api/contratos/{suspenso['id']}", json={"status": "ativo"}).status_code == 409


def test_encerrar_contrato_keeps_row(client_admin, make_contrato):
    c = make_contrato()
    r = client_admin.delete(f"/api/contratos/{c['id']}")
    assert r.status_code == 200
    assert r.get_json()["item"]["status"] == "encerrado"
    assert client_admin.get(f"/api/contratos/{c['id']}").get_json()["item"]["status"] == "encerrado"

    # the property is free again
    make_contrato(imovel_id=c["imovel_id"])


def test_agent_cannot_close_contracts(client_agent, make_contrato):
    c = make_contrato(client=client_agent)
    assert client_agent.delete(f"/api/contratos/{c['id']}").status_code == 403


def test_contracts_require_login(client):
    assert client.get("/api/contratos/").status_code == 401
    assert client.get("/api/pagamentos/").status_code == 401


def test_linked_imovel_and_cliente_cannot_be_deleted(client_admin, make_contrato):
    c = make_contrato()
    r = client_admin.delete(f"/api/imoveis/{c['imovel_id']}")
    assert r.status_code == 409
    assert r.get_json()["contratos_vinculados"] == 1
    r = client_admin.delete(f"/api/clientes/{c['inquilino_id']}")
    assert r.status_code == 409


# ---- pagamentos ----


def test_pagamento_crud(client_admin, make_contrato, make_pagamento):
    c = make_contrato()
    p = make_pagamento(c["id"], date(2026, 3, 10), valor_juros=12.5)
    assert p["status"] == "pendente"
    assert p["mes_referencia"] == "2026-03-01"
    assert p["valor_total"] == 2512.5
    assert p["contrato"]["id"] == c["id"]

    r = client_admin.put(
        f"/api/pagamentos/{p['id']}",
        json={"status": "pago", "valor_pago": 2512.5, "data_pagamento": "2026-03-09"},
    )
    assert r.status_code == 200
    assert r.get_json()["item"]["data_pagamento"] == "2026-03-09"

    items = client_admin.get(f"/api/pagamentos/?contrato_id={c['id']}&status=pago").get_json()["items"]
    assert [i["id"] for i in items] == [p["id"]]
    items = client_admin.get(f"/api/pagamentos/?contrato_id={c['id']}&mes_referencia=2026-03-20").get_json()["items"]
    assert len(items) == 1

    assert client_admin.delete(f"/api/pagamentos/{p['id']}").status_code == 200
    assert client_admin.get(f"/api/pagamentos/{p['id']}").status_code == 404


def test_one_pagamento_per_month(client_admin, make_contrato, make_pagamento):
    c = make_contrato()
    make_pagamento(c["id"], date(2026, 4, 10))
    r = client_admin.post(
        "/api/pagamentos/",
        json={"contrato_id": c["id"], "mes_referencia": "2026-04-25", "valor_devido": 100, "data_vencimento": "2026-04-10"},
    )
    assert r.status_code == 409
    other = make_pagamento(c["id"], date(2026, 5, 10))
    assert client_admin.put(f"/api/pagamentos/{other['id']}", json={"mes_referencia": "2026-04-01"}).status_code == 409


def test_pago_rules(client_admin, make_contrato, make_pagamento):
    c = make_contrato()
    base = {"contrato_id": c["id"], "mes_referencia": "2026-06-01", "valor_devido": 2500, "data_vencimento": "2026-06-10"}

    r = client_admin.post("/api/pagamentos/", json={**base, "status": "pago"})
    assert r.status_code == 422
    assert {(e["field"], e["code"]) for e in r.get_json()["errors"]} == {
        ("valor_pago", "REQUIRED"),
        ("data_pagamento", "REQUIRED"),
    }

    r = client_admin.post("/api/pagamentos/", json={**base, "valor_pago": 100})
    assert r.status_code == 422
    assert r.get_json()["errors"][0] == {
        "field": "valor_pago",
        "message": "Permitido apenas para pagamentos com status pago",
        "code": "INVALID_STATUS",
    }

    # switching back from pago must clear the payment data
    p = make_pagamento(c["id"], date(2026, 7, 10), status="pago", valor_pago=2500, data_pagamento="2026-07-08")
    r = client_admin.put(f"/api/pagamentos/{p['id']}", json={"status": "pendente"})
    assert r.status_code == 422
    r = client_admin.put(
        f"/api/pagamentos/{p['id']}", json={"status": "pendente", "valor_pago": None, "data_pagamento": None}
    )
    assert r.status_code == 200


def test_pagamento_unknown_contrato(client_admin):
    r = client_admin.post(
        "/api/pagamentos/",
        json={"contrato_id": 999999, "mes_referencia": "2026-01-01", "valor_devido": 10, "data_vencimento": "2026-01-10"},
    )
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "NOT_FOUND"


def test_agent_payment_permissions(client_agent, make_contrato, make_pagamento):
    c = make_contrato()
    p = make_pagamento(c["id"], date(2026, 8, 10))
    assert client_agent.get(f"/api/pagamentos/{p['id']}").status_code == 200
    assert client_agent.delete(f"/api/pagamentos/{p['id']}").status_code == 403
    assert client_agent.post("/api/pagamentos/processar-vencimentos", json={}).status_code == 403


def test_bad_filters_400(client_admin):
    assert client_admin.get("/api/pagamentos/?status=quitado").status_code == 400
    assert client_admin.get("/api/pagamentos/?mes_referencia=ontem").status_code == 400
    assert client_admin.get("/api/contratos/?imovel_id=abc").status_code == 400


# ---- due-date processing ----


def test_processar_vencimentos(client_admin, client_agent, make_contrato, make_pagamento):
    hoje = _today()
    client_agent.get("/api/notificacoes/configuracoes")
    c = make_contrato(data_fim=(hoje + timedelta(days=5)).isoformat())
    proximo = make_pagamento(c["id"], hoje + timedelta(days=1), mes=date(2026, 1, 1))
    atrasado = make_pagamento(c["id"], hoje - timedelta(days=8), mes=date(2025, 12, 1))

    result = _processar(client_admin, hoje)
    assert result["data_referencia"] == hoje.isoformat()
    assert result["detalhes"]["pagamentos_marcados_atrasados"] >= 1
    assert result["notificacoes_criadas"] >= 4

    assert client_admin.get(f"/api/pagamentos/{atrasado['id']}").get_json()["item"]["status"] == "atrasado"
    assert client_admin.get(f"/api/pagamentos/{proximo['id']}").get_json()["item"]["status"] == "pendente"

    by_tipo = {}
    for n in _notificacoes(client_agent, c["id"]):
        by_tipo.setdefault(n["tipo"], []).append(n)
    assert [n["pagamento_id"] for n in by_tipo["vencimento_proximo"]] == [str(proximo["id"])]
    assert by_tipo["vencimento_proximo"][0]["prioridade"] == "alta"
    assert [n["pagamento_id"] for n in by_tipo["pagamento_atrasado"]] == [str(atrasado["id"])]
    assert by_tipo["pagamento_atrasado"][0]["prioridade"] == "alta"
    assert len(by_tipo["lembrete_cobranca"]) == 1
    assert by_tipo["contrato_vencendo"][0]["prioridade"] == "alta"
    assert by_tipo["contrato_vencendo"][0]["metadata"]["dias_restantes"] == 5

    # a second run on the same day adds nothing for this contract
    _processar(client_admin, hoje)
    assert len(_notificacoes(client_agent, c["id"])) == 4


def test_processar_respects_max_lembretes(client_admin, client_agent, make_contrato, make_pagamento):
    hoje = _today()
    r = client_agent.put("/api/notificacoes/configuracoes", json={"dias_lembrete_atraso": 1, "max_lembretes_atraso": 1})
    assert r.status_code == 200
    c = make_contrato()
    make_pagamento(c["id"], hoje - timedelta(days=40), mes=date(2025, 9, 1))
    for _ in range(3):
        _processar(client_admin, hoje)
    items = _notificacoes(client_agent, c["id"])
    assert len([n for n in items if n["tipo"] == "lembrete_cobranca"]) == 1
    atrasados = [n for n in items if n["tipo"] == "pagamento_atrasado"]
    assert len(atrasados) == 1
    assert atrasados[0]["prioridade"] == "urgente"


def test_processar_skips_inactive_settings(client_admin, client_agent, make_contrato, make_pagamento):
    hoje = _today()
    assert client_agent.put("/api/notificacoes/configuracoes", json={"ativo": False}).status_code == 200
    c = make_contrato(data_fim=(hoje + timedelta(days=3)).isoformat())
    make_pagamento(c["id"], hoje - timedelta(days=10))
    _processar(client_admin, hoje)
    assert _notificacoes(client_agent, c["id"]) == []


def test_processar_rejects_bad_date(client_admin):
    r = client_admin.post("/api/pagamentos/processar-vencimentos", json={"dataReferencia": "31/12/2026"})
    assert r.status_code == 400
