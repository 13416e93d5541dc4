from datetime import UTC, datetime

from imobiliaria import notificacao_service
from imobiliaria.notificacao_service import NotificacaoService


def _create(client, **overrides):
    payload = {
        "tipo": "vencimento_proximo",
        "titulo": "Aluguel vence em 3 dias",
        "mensagem": "O aluguel do contrato 42 vence na sexta-feira.",
        "prioridade": "media",
        "contrato_id": "42",
    }
    payload.update(overrides)
    r = client.post("/api/notificacoes/", json=payload)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["item"]


def test_create_and_list_with_unread_count(client_agent):
    n1 = _create(client_agent)
    n2 = _create(client_agent, tipo="pagamento_atrasado", prioridade="alta", metadata={"dias_atraso": 5})
    assert n1["status"] == "pendente"
    assert n1["user_id"] == client_agent.user.id
    assert n2["metadata"] == {"dias_atraso": 5}

    body = client_agent.get("/api/notificacoes/").get_json()
    assert body["nao_lidas"] == 2
    assert body["pagination"]["total"] == 2
    assert {n["id"] for n in body["items"]} == {n1["id"], n2["id"]}

    only_alta = client_agent.get("/api/notificacoes/?prioridade=alta").get_json()["items"]
    assert [n["id"] for n in only_alta] == [n2["id"]]


def test_notifications_are_per_user(client_agent, client_admin):
    mine = _create(client_agent)
    assert client_admin.get(f"/api/notificacoes/{mine['id']}").status_code == 404
    assert client_admin.get("/api/notificacoes/").get_json()["nao_lidas"] == 0


def test_create_validation(client_agent):
    r = client_agent.post("/api/notificacoes/", json={"tipo": "spam", "titulo": "", "prioridade": "media"})
    assert r.status_code == 422
    fields = {e["field"] for e in r.get_json()["errors"]}
    assert {"tipo", "titulo", "mensagem"} <= fields


def test_list_rejects_unknown_filter_values(client_agent):
    assert client_agent.get("/api/notificacoes/?status=arquivada").status_code == 400
    assert client_agent.get("/api/notificacoes/?data_inicio=ontem").status_code == 400


def test_transitions(client_agent):
    n = _create(client_agent)
    r = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "marcar_como_enviada"})
    assert r.status_code == 200
    assert r.get_json()["item"]["status"] == "enviada"
    assert r.get_json()["item"]["data_envio"] is not None

    r = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "marcar_como_lida"})
    assert r.get_json()["item"]["status"] == "lida"
    assert client_agent.get("/api/notificacoes/?apenas_nao_lidas=true").get_json()["items"] == []

    r = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "cancelar"})
    assert r.status_code == 409

    r = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "arquivar"})
    assert r.status_code == 400
    assert "marcar_como_lida" in r.get_json()["allowed_actions"]


def test_cancelled_cannot_be_read(client_agent):
    n = _create(client_agent)
    assert client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "cancelar"}).status_code == 200
    assert client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "marcar_como_lida"}).status_code == 409


def test_delete(client_agent):
    n = _create(client_agent)
    assert client_agent.delete(f"/api/notificacoes/{n['id']}").status_code == 200
    assert client_agent.delete(f"/api/notificacoes/{n['id']}").status_code == 404
    assert client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "cancelar"}).status_code == 404


def test_configuracoes_defaults_and_update(client_agent):
    cfg = client_agent.get("/api/notificacoes/configuracoes").get_json()["item"]
    assert cfg["dias_aviso_vencimento"] == 3
    assert cfg["max_lembretes_atraso"] == 3
    assert cfg["ativo"] is True

    r = client_agent.put(
        "/api/notificacoes/configuracoes", json={"dias_aviso_vencimento": 5, "notificar_contrato_vencendo": False}
    )
    assert r.status_code == 200
    item = r.get_json()["item"]
    assert item["dias_aviso_vencimento"] == 5
    assert item["notificar_contrato_vencendo"] is False
    assert item["dias_lembrete_atraso"] == 7


def test_configuracoes_validation(client_agent):
    r = client_agent.put("/api/notificacoes/configuracoes", json={"dias_aviso_vencimento": 99})
    assert r.status_code == 422
    assert client_agent.put("/api/notificacoes/configuracoes", json={"outro": 1}).status_code == 400


def test_configuracoes_accept_float_strings_for_integers(client_agent):
    r = client_agent.put(
        "/api/notificacoes/configuracoes", json={"dias_aviso_vencimento": "5.0", "max_lembretes_atraso": "4"}
    )
    assert r.status_code == 200, r.get_json()
    item = r.get_json()["item"]
    assert (item["dias_aviso_vencimento"], item["max_lembretes_atraso"]) == (5, 4)
    r = client_agent.put("/api/notificacoes/configuracoes", json={"dias_aviso_vencimento": "5.5"})
    assert r.status_code == 422


def test_non_object_bodies_are_rejected(client_agent):
    n = _create(client_agent)
    assert client_agent.post("/api/notificacoes/", json=["tipo"]).status_code == 400
    assert client_agent.put("/api/notificacoes/configuracoes", json=[1]).status_code == 400
    assert client_agent.patch(f"/api/notificacoes/{n['id']}", json="marcar_como_lida").status_code == 400


def test_first_read_time_is_kept(client_agent, monkeypatch):
    n = _create(client_agent)
    first = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "marcar_como_lida"}).get_json()["item"]
    assert first["data_leitura"] is not None

    monkeypatch.setattr(notificacao_service, "utcnow", lambda: datetime(2030, 1, 1, tzinfo=UTC))
    again = client_agent.patch(f"/api/notificacoes/{n['id']}", json={"action": "marcar_como_lida"}).get_json()["item"]
    assert again["status"] == "lida"
    assert again["data_leitura"] == first["data_leitura"]


def test_enviar_pendentes_respects_limit(app, client_agent):
    svc = NotificacaoService()
    with app.app_context():
        svc.enviar_pendentes(limit=100_000)
    ids = [_create(client_agent, titulo=f"Aviso {i}")["id"] for i in range(3)]
    with app.app_context():
        assert svc.enviar_pendentes(limit=2) == 2
        statuses = [svc.obter(i)["status"] for i in ids]
        assert statuses == ["enviada", "enviada", "pendente"]
        assert svc.enviar_pendentes(limit=2) == 1
        assert svc.obter(ids[2])["status"] == "enviada"
