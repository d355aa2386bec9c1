from app.catalog.config import load_config


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_requires_session(client):
    for path in ("/api/materials", "/api/dropdowns/division", "/api/dashboard/stats"):
        r = client.get(path)
        assert r.status_code == 401
        assert r.json["error"] == "Not authenticated. Please log in."


def test_mutations_require_session(client):
    r = client.post("/api/dropdowns", json={"type": "division", "label": "IT"})
    assert r.status_code == 401
    r = client.delete("/api/materials/1")
    assert r.status_code == 401


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"] == "Not found"


def test_login_then_api_access(client, login):
    login()
    r = client.get("/api/materials")
    assert r.status_code == 200
    assert r.json == {"materials": [], "total": 0, "page": 1, "totalPages": 0}


def test_cors_preflight_allows_frontend_origin(client):
    r = client.options(
        "/api/materials",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert r.headers["Access-Control-Allow-Credentials"] == "true"


def test_cors_ignores_unlisted_origin(client, login):
    login()
    r = client.get("/api/materials", headers={"Origin": "http://evil.example"})
    assert r.status_code == 200
    assert "Access-Control-Allow-Origin" not in r.headers


def test_cors_origins_from_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://catalog.example.com, https://admin.example.com")
    assert load_config()["CORS_ORIGINS"] == ["https://catalog.example.com", "https://admin.example.com"]


def test_upload_key_outside_storage_root_is_404(client):
    r = client.get("/uploads/../../etc/passwd")
    assert r.status_code == 404
    assert r.json["error"] == "File not found"
