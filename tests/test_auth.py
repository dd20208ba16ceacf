from __future__ import annotations
from identity import ProviderError, ProviderErrorKind
from conftest import login_as


def test_unauthorized_401(client):
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.get_json() == {"error": "unauthorized"}


def test_login_reads_role_from_provider(client, fake_identity):
    user = fake_identity.add("principal", "s3cret-pass", "admin")
    r = client.post("/api/v1/auth/login", json={"username": "principal", "password": "s3cret-pass"})
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True
    assert js["user"] == {"id": user.id, "username": "principal", "role": "admin"}

    me = client.get("/api/v1/auth/me")
    assert me.status_code == 200 and me.get_json()["user"]["id"] == user.id

    assert client.post("/api/v1/auth/logout").status_code == 200
    assert client.get("/api/v1/auth/me").status_code == 401


def test_wrong_password(client, fake_identity):
    fake_identity.add("principal", "s3cret-pass", "admin")
    r = client.post("/api/v1/auth/login", json={"username": "principal", "password": "nope"})
    assert r.status_code == 401
    r = client.post("/api/v1/auth/login", json={"username": "stranger", "password": "nope"})
    assert r.status_code == 401


def test_missing_credentials(client):
    r = client.post("/api/v1/auth/login", json={"username": "x"})
    assert r.status_code == 400


def test_provider_down_on_login(client, fake_identity):
    fake_identity.fail["find_by_username"] = ProviderError(ProviderErrorKind.TRANSIENT)
    r = client.post("/api/v1/auth/login", json={"username": "principal", "password": "s3cret-pass"})
    assert r.status_code == 503


def test_rate_limit_login(app, client):
    app.config["AUTH_RL_MAX"] = 2
    for _ in range(2):
        client.post("/api/v1/auth/login", json={"username": "brute", "password": "wrong"})
    r = client.post("/api/v1/auth/login", json={"username": "brute", "password": "wrong"})
    assert r.status_code == 429


def test_forbidden_for_non_admin(client):
    login_as(client, "t_1", "teacher")
    r = client.get("/api/v1/admin/dashboard/summary")
    assert r.status_code == 403
    assert r.get_json() == {"error": "forbidden"}


def test_rate_limit_forgets_stale_usernames(app, client, monkeypatch):
    from blueprints.auth import routes as auth_routes
    attempts: dict = {}
    clock = [1_000_000.0]
    monkeypatch.setattr(auth_routes, "_login_attempts", attempts)
    monkeypatch.setattr(auth_routes.time, "time", lambda: clock[0])
    app.config["AUTH_RL_WINDOW"] = 60

    for i in range(3):
        client.post("/api/v1/auth/login", json={"username": f"spray{i}", "password": "wrong"})
    assert len(attempts) == 3

    clock[0] += 61
    client.post("/api/v1/auth/login", json={"username": "late", "password": "wrong"})
    assert [k.split("|")[1] for k in attempts] == ["late"]
