def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok"}


def test_api_health_checks_database(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json() == {"status": "ok", "database": "ok"}
    assert r.headers["Cache-Control"] == "no-store"


def test_request_id_echoed(client):
    r = client.get("/healthz", headers={"X-Request-Id": "req-123"})
    assert r.headers["X-Request-Id"] == "req-123"
    assert int(r.headers["X-Request-Duration-ms"]) >= 0
    assert client.get("/healthz").headers["X-Request-Id"]


def test_problem_json_shape(client):
    r = client.get("/api/cidades/", headers={"X-Request-Id": "req-401"})
    assert r.status_code == 401
    assert r.mimetype == "application/problem+json"
    body = r.get_json()
    assert body["status"] == 401
    assert body["request_id"] == "req-401"
    assert r.headers["WWW-Authenticate"].startswith("Bearer")


def test_cors_allow_list(app, client, monkeypatch):
    monkeypatch.setitem(app.config, "CORS_ALLOWED_ORIGINS", ["https://site.example.com"])
    r = client.open("/api/public/imoveis", method="OPTIONS", headers={"Origin": "https://site.example.com"})
    assert r.status_code == 204
    assert r.headers["Access-Control-Allow-Origin"] == "https://site.example.com"
    assert r.headers["Access-Control-Allow-Credentials"] == "true"
    r = client.get("/healthz", headers={"Origin": "https://evil.example.com"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_unhandled_exception_is_500_with_incident(client, client_admin, monkeypatch):
    import imobiliaria.public_api as public_api

    def _boom():
        raise RuntimeError("database exploded")

    monkeypatch.setattr(public_api, "get_session", _boom)
    r = client.get("/api/public/cidades")
    assert r.status_code == 500
    body = r.get_json()
    assert body["incident_id"]
    assert "exploded" not in r.get_data(as_text=True)

    monkeypatch.undo()
    rows = client_admin.get("/api/logs-auditoria/?event_type=system_error").get_json()["items"]
    assert any(row["details"].get("incident_id") == body["incident_id"] for row in rows)
    assert all(row["severity"] == "critical" for row in rows)
