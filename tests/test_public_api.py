import uuid


def test_public_listing_needs_no_auth(client, client_admin, cidade, make_imovel):
    cliente = client_admin.post("/api/clientes/", json={"nome": "Dono"}).get_json()["item"]
    item = make_imovel(cliente_id=cliente["id"])
    r = client.get(f"/api/public/imoveis?cidade_id={cidade['id']}")
    assert r.status_code == 200
    items = r.get_json()["items"]
    assert [i["id"] for i in items] == [item["id"]]
    assert "cliente" not in items[0]
    assert "cliente_id" not in items[0]
    assert "user_id" not in items[0]


def test_inactive_imovel_and_city_hidden(client, client_admin, cidade, make_imovel):
    visible = make_imovel()
    hidden = make_imovel(ativo=False)
    ids = {i["id"] for i in client.get(f"/api/public/imoveis?cidade_id={cidade['id']}").get_json()["items"]}
    assert ids == {visible["id"]}
    assert client.get(f"/api/public/imoveis/{hidden['id']}").status_code == 404

    client_admin.put(f"/api/cidades/{cidade['id']}", json={"ativa": False})
    assert client.get(f"/api/public/imoveis?cidade_id={cidade['id']}").get_json()["items"] == []
    assert client.get(f"/api/public/imoveis/{visible['id']}").status_code == 404
    assert cidade["id"] not in [c["id"] for c in client.get("/api/public/cidades").get_json()["items"]]


def test_destaque_first(client, cidade, make_imovel):
    plain = make_imovel()
    featured = make_imovel(destaque=True)
    items = client.get(f"/api/public/imoveis?cidade_id={cidade['id']}").get_json()["items"]
    assert [i["id"] for i in items] == [featured["id"], plain["id"]]

    destaques = client.get("/api/public/imoveis/destaque?limit=24").get_json()["items"]
    assert featured["id"] in [i["id"] for i in destaques]
    assert plain["id"] not in [i["id"] for i in destaques]


def test_public_detail_and_search(client, make_imovel):
    tag = uuid.uuid4().hex[:8]
    item = make_imovel(bairro=f"Centro {tag}")
    r = client.get(f"/api/public/imoveis/{item['id']}")
    assert r.status_code == 200
    assert r.get_json()["item"]["bairro"] == f"Centro {tag}"
    found = client.get("/api/public/imoveis", query_string={"search": f"centro {tag}"}).get_json()["items"]
    assert [i["id"] for i in found] == [item["id"]]


def test_public_bad_params(client):
    assert client.get("/api/public/imoveis?cidade_id=x").status_code == 400
    assert client.get("/api/public/imoveis/destaque?limit=x").status_code == 400
    assert client.get("/api/public/imoveis/999999").status_code == 404
