import os
import sys
import uuid

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

ADMIN_PASSWORD = "Adm1n!Secure"
AGENT_PASSWORD = "Str0ng!Pass"


def _lazy_imports():  # isolate heavy imports & satisfy lint ordering
    from imobiliaria.app_factory import create_app  # noqa: E402
    from imobiliaria.db import create_all  # noqa: E402

    return create_app, create_all


def pytest_configure(config):  # pragma: no cover - pytest hook
    config.addinivalue_line("markers", "redis: requires a running Redis server (REDIS_URL)")


@pytest.fixture(scope="session")
def app_session(tmp_path_factory):
    create_app, create_all = _lazy_imports()
    db_file = tmp_path_factory.mktemp("db") / "test_app.db"
    uploads = tmp_path_factory.mktemp("uploads")
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "database_url": f"sqlite:///{db_file}",
            "jwt_secret": "test-secret",
            "FORCE_DB_REINIT": True,
            "UPLOAD_FOLDER": str(uploads),
            "RATE_LIMIT_BACKEND": "memory",
        }
    )
    with app.app_context():
        create_all()
    return app


@pytest.fixture
def app(app_session):
    return app_session


@pytest.fixture(autouse=True)
def _reset_security_state(app_session):
    """Fresh limiter buckets and detector windows for every test."""
    from imobiliaria import rate_limiter
    from imobiliaria.security_logger import get_security_logger

    rate_limiter._test_reset()
    rate_limiter.configure("memory")
    with app_session.app_context():
        get_security_logger().reset()
    yield


@pytest.fixture
def make_user(app_session):
    """Create a user with a unique username; returns (user, password)."""
    from imobiliaria.user_repo import UserRepo

    def _make(role="real-estate-agent", password=None, **fields):
        suffix = uuid.uuid4().hex[:8]
        pw = password or (ADMIN_PASSWORD if role == "admin" else AGENT_PASSWORD)
        with app_session.app_context():
            user = UserRepo().create_user(
                username=fields.pop("username", f"{role[:5]}_{suffix}"),
                email=fields.pop("email", f"{role[:5]}_{suffix}@example.com"),
                password=pw,
                full_name=fields.pop("full_name", f"Usuário {suffix}"),
                role=role,
                **fields,
            )
        return user, pw

    return _make


def login(client, username, password):
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.get_json()
    return r.get_json()["token"]


@pytest.fixture
def client(app_session):
    c = app_session.test_client()
    c.environ_base = {}
    return c


@pytest.fixture
def admin_user(make_user):
    return make_user("admin")


@pytest.fixture
def agent_user(make_user):
    return make_user("real-estate-agent")


@pytest.fixture
def client_admin(app_session, admin_user):
    """Test client holding an admin auth-token cookie."""
    c = app_session.test_client()
    user, pw = admin_user
    login(c, user.username, pw)
    c.user = user  # type: ignore[attr-defined]
    return c


@pytest.fixture
def client_agent(app_session, agent_user):
    c = app_session.test_client()
    user, pw = agent_user
    login(c, user.username, pw)
    c.user = user  # type: ignore[attr-defined]
    return c


@pytest.fixture
def cidade(client_admin):
    r = client_admin.post("/api/cidades/", json={"nome": f"Cidade {uuid.uuid4().hex[:8]}"})
    assert r.status_code == 201, r.get_json()
    return r.get_json()["item"]


@pytest.fixture
def make_imovel(client_admin, cidade):
    def _make(client=None, **overrides):
        payload = {
            "nome": f"Apartamento {uuid.uuid4().hex[:6]}",
            "tipo": "Apartamento",
            "finalidade": "aluguel",
            "valor_aluguel": 2500,
            "quartos": 2,
            "banheiros": 1,
            "cidade_id": cidade["id"],
        }
        payload.update(overrides)
        r = (client or client_admin).post("/api/imoveis/", json=payload)
        assert r.status_code == 201, r.get_json()
        return r.get_json()["item"]

    return _make
