import pytest
from werkzeug.security import generate_password_hash

from app.catalog import create_app
from app.catalog.auth import _login_attempts
from app.catalog.db import session_scope
from app.catalog.models import Base, User

ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "user@example.com"
PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in (
        "S3_ENDPOINT",
        "S3_REGION",
        "S3_BUCKET",
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
        "CSRF_ENABLED",
        "CORS_ORIGINS",
    ):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                User(email=ADMIN_EMAIL, password_hash=generate_password_hash(PASSWORD), name="Admin", role="admin"),
                User(email=USER_EMAIL, password_hash=generate_password_hash(PASSWORD), name="Regular User"),
            ]
        )

    yield app
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    def _login(email=USER_EMAIL, password=PASSWORD):
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        return r

    return _login
