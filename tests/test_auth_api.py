from models import SystemAuditLog

from conftest import PASSWORD, login


def test_csrf_token_endpoint(client):
    response = client.get("/auth/csrf-token")
    assert response.status_code == 200
    assert response.get_json()["csrf_token"]


def test_register_requires_institutional_email(client):
    response = client.post(
        "/auth/register",
        json={
            "full_name": "Outsider",
            "email": "outsider@gmail.com",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
    )
    assert response.status_code == 400
    assert "email" in response.get_json()["error"]["details"]["fields"]


def test_register_enforces_password_policy(client):
    response = client.post(
        "/auth/register",
        json={"full_name": "Weak", "email": "weak@liceo.edu.ph", "password": "password", "confirm_password": "password"},
    )
    assert response.status_code == 400


def test_register_login_me_logout(app, client):
    payload = {
        "full_name": "New Student",
        "email": "New.Student@liceo.edu.ph",
        "password": PASSWORD,
        "confirm_password": PASSWORD,
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 201
    user = response.get_json()["user"]
    assert user["role"] == "student"
    assert user["email"] == "new.student@liceo.edu.ph"

    assert client.get("/auth/me").get_json()["user"]["email"] == "new.student@liceo.edu.ph"
    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401

    duplicate = client.post("/auth/register", json=payload)
    assert duplicate.status_code == 409

    login(client, "new.student@liceo.edu.ph")
    assert client.get("/auth/me").status_code == 200
    with app.app_context():
        actions = {e.action for e in SystemAuditLog.query.all()}
    assert {"REGISTER", "LOGOUT", "LOGIN"} <= actions


def test_login_with_wrong_password(client, accounts):
    response = client.post("/auth/login", json={"email": accounts.admin.email, "password": "Wrong-Pass-123"})
    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "AUTHENTICATION_REQUIRED"


def test_service_routes(client):
    index = client.get("/").get_json()
    assert "facilities" in index["categories"]
    assert index["verification_window_days"] == 7
    health = client.get("/health")
    assert health.status_code == 200
    assert health.get_json()["database"] == "ok"
    assert health.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route_is_json(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "NOT_FOUND"
