from app.catalog.db import session_scope
from app.catalog.models import AuditEvent, User

USER_EMAIL = "user@example.com"
PASSWORD = "password123"


def test_register_creates_user(client, app):
    r = client.post(
        "/api/auth/register",
        json={"email": "  New.Person@Example.com ", "password": "longenough", "name": "New Person"},
    )
    assert r.status_code == 201
    assert r.json["success"] is True
    assert r.json["user"]["email"] == "new.person@example.com"
    assert r.json["user"]["role"] == "user"

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new.person@example.com").one()
        assert u.password_hash != "longenough"
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.register").count() == 1


def test_register_validation(client):
    r = client.post("/api/auth/register", json={"email": "a@b.com", "password": "longenough"})
    assert r.status_code == 400
    assert r.json["error"] == "Please provide all required fields"

    r = client.post("/api/auth/register", json={"email": "not-an-email", "password": "longenough", "name": "X"})
    assert r.status_code == 400
    assert r.json["field"] == "email"

    r = client.post("/api/auth/register", json={"email": "a@b.com", "password": "short", "name": "X"})
    assert r.status_code == 400
    assert r.json["field"] == "password"


def test_register_duplicate_email_is_case_insensitive(client):
    r = client.post("/api/auth/register", json={"email": "USER@example.com", "password": "longenough", "name": "Dup"})
    assert r.status_code == 400
    assert r.json["error"] == "Email already registered"


def test_login_check_logout(client):
    r = client.get("/api/auth/check")
    assert r.json == {"isAuthenticated": False}

    r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": PASSWORD})
    assert r.status_code == 200
    assert r.json["user"]["email"] == USER_EMAIL

    r = client.get("/api/auth/check")
    assert r.json["isAuthenticated"] is True
    assert r.json["user"]["name"] == "Regular User"

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert client.get("/api/auth/check").json == {"isAuthenticated": False}


def test_login_missing_fields(client):
    r = client.post("/api/auth/login", json={"email": USER_EMAIL})
    assert r.status_code == 400


def test_login_invalid_credentials(client, app):
    r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid email or password"

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").count() == 1


def test_login_rate_limited_after_five_attempts(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": "wrong-password"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": PASSWORD})
    assert r.status_code == 429


def test_inactive_user_cannot_login(client, app):
    with session_scope(app) as s:
        s.query(User).filter(User.email == USER_EMAIL).one().is_active = False
    r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": PASSWORD})
    assert r.status_code == 401


def test_update_profile(client, login):
    login()
    r = client.put("/api/auth/profile", json={"name": "  Renamed  "})
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Renamed"

    r = client.put("/api/auth/profile", json={"name": "   "})
    assert r.status_code == 400


def test_change_password(client, login):
    login()
    r = client.put("/api/auth/password", json={"currentPassword": "nope", "newPassword": "another-password"})
    assert r.status_code == 400
    assert r.json["field"] == "currentPassword"

    r = client.put("/api/auth/password", json={"currentPassword": PASSWORD, "newPassword": "short"})
    assert r.status_code == 400
    assert r.json["field"] == "newPassword"

    r = client.put("/api/auth/password", json={"currentPassword": PASSWORD, "newPassword": "another-password"})
    assert r.status_code == 200

    client.post("/api/auth/logout")
    r = client.post("/api/auth/login", json={"email": USER_EMAIL, "password": "another-password"})
    assert r.status_code == 200


def test_csrf_enforced_when_enabled(client, app, login):
    login()
    app.config["CSRF_ENABLED"] = True

    r = client.post("/api/dropdowns", json={"type": "division", "label": "IT Department"})
    assert r.status_code == 400
    assert r.json["code"] == "csrf_failed"

    token = client.get("/api/auth/csrf").json["csrfToken"]
    r = client.post(
        "/api/dropdowns",
        json={"type": "division", "label": "IT Department"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 201
