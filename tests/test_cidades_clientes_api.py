import uuid


def _nome(prefix="Cidade"):
    return f"{prefix} {uuid.uuid4().hex[:8]}"


def test_cidade_crud(client_admin):
    nome = _nome()
    r = client_admin.post("/api/cidades/", json={"nome": f"  {nome}  "})
    assert r.status_code == 201
    item = r.get_json()["item"]
    assert item["nome"] == nome
    assert item["ativa"] is True

    r = client_admin.put(f"/api/cidades/{item['id']}", json={"ativa": False})
    assert r.status_code == 200
    assert r.get_json()["item"]["ativa"] is False

    listed = client_admin.get("/api/cidades/?ativa=false").get_json()["items"]
    assert item["id"] in [c["id"] for c in listed]
    active = client_admin.get("/api/cidades/?ativa=true").get_json()["items"]
    assert item["id"] not in [c["id"] for c in active]

    assert client_admin.delete(f"/api/cidades/{item['id']}").status_code == 200
    assert client_admin.get(f"/api/cidades/{item['id']}").status_code == 404


def test_cidade_duplicate_name_case_insensitive(client_admin):
    nome = _nome()
    client_admin.post("/api/cidades/", json={"nome": nome})
    r = client_admin.post("/api/cidades/", json={"nome": nome.upper()})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "DUPLICATE"


def test_cidade_validation_422(client_admin):
    r = client_admin.post("/api/cidades/", json={"nome": "X"})
    assert r.status_code == 422
    body = r.get_json()
    assert body["errors"][0]["field"] == "nome"
    assert body["errors"][0]["code"] == "MIN_LENGTH"


def test_cidade_delete_conflict_when_imoveis_linked(client_admin, cidade, make_imovel):
    make_imovel()
    r = client_admin.delete(f"/api/cidades/{cidade['id']}")
    assert r.status_code == 409
    assert r.get_json()["imoveis_vinculados"] == 1


def test_agent_can_view_but_not_create_cidade(client_agent, cidade):
    assert client_agent.get("/api/cidades/").status_code == 200
    r = client_agent.post("/api/cidades/", json={"nome": _nome()})
    assert r.status_code == 403
    assert r.get_json()["required_permission"] == "cities.create"


def test_requires_session(client):
    assert client.get("/api/cidades/").status_code == 401
    assert client.get("/api/clientes/").status_code == 401


def test_cliente_crud_and_pagination(client_agent):
    tag = uuid.uuid4().hex[:8]
    ids = []
    for i in range(3):
        r = client_agent.post(
            "/api/clientes/",
            json={"nome": f"Cliente {tag} {i}", "email": f"c{i}_{tag}@example.com", "telefone": "(48) 99999-0000"},
        )
        assert r.status_code == 201
        assert r.get_json()["item"]["user_id"] == client_agent.user.id
        ids.append(r.get_json()["item"]["id"])

    page = client_agent.get(f"/api/clientes/?search={tag}&limit=2&orderBy=nome&orderDirection=asc").get_json()
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert [c["nome"] for c in page["items"]] == [f"Cliente {tag} 0", f"Cliente {tag} 1"]

    r = client_agent.put(f"/api/clientes/{ids[0]}", json={"observacoes": "Prefere contato por email"})
    assert r.status_code == 200
    assert r.get_json()["item"]["observacoes"] == "Prefere contato por email"
    assert r.get_json()["item"]["nome"] == f"Cliente {tag} 0"

    assert client_agent.delete(f"/api/clientes/{ids[2]}").status_code == 200
    assert client_agent.get(f"/api/clientes/{ids[2]}").status_code == 404


def test_cliente_duplicate_email_and_formats(client_agent):
    email = f"dup_{uuid.uuid4().hex[:8]}@example.com"
    assert client_agent.post("/api/clientes/", json={"nome": "Primeiro", "email": email}).status_code == 201
    r = client_agent.post("/api/clientes/", json={"nome": "Segundo", "email": email.upper()})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["code"] == "DUPLICATE"
    r = client_agent.post("/api/clientes/", json={"nome": "Terceiro", "cpf_cnpj": "123"})
    assert r.status_code == 422
    assert r.get_json()["errors"][0]["field"] == "cpf_cnpj"


def test_cliente_delete_conflict(client_admin, make_imovel):
    c = client_admin.post("/api/clientes/", json={"nome": "Proprietário"}).get_json()["item"]
    make_imovel(cliente_id=c["id"])
    r = client_admin.delete(f"/api/clientes/{c['id']}")
    assert r.status_code == 409


def test_invalid_pagination_400(client_agent):
    assert client_agent.get("/api/clientes/?page=0").status_code == 400
    assert client_agent.get("/api/clientes/?limit=abc").status_code == 400


def test_non_object_bodies_400(client_admin, cidade):
    assert client_admin.post("/api/cidades/", json=[1]).status_code == 400
    assert client_admin.put(f"/api/cidades/{cidade['id']}", json="nome").status_code == 400
    assert client_admin.post("/api/clientes/", json=[{"nome": "Ana"}]).status_code == 400
