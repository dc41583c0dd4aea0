import pytest

from freshcart.core.security import get_password_hash


@pytest.fixture
def firebase_claims(monkeypatch):
    """Stub Firebase ID token verification; tests set the claims they need."""
    claims = {"uid": "fb_user_1", "email": "asha@freshcart.in", "firebase": {"sign_in_provider": "password"}}

    def fake_verify(id_token):
        if id_token == "invalid-token-value":
            raise ValueError("Token could not be verified")
        return dict(claims)

    monkeypatch.setattr("freshcart.USERS.routes_auth.verify_id_token", fake_verify)
    return claims


def _register(client, **body):
    payload = {"id_token": "valid-token-value", "name": "Asha Rao", "password": "secret123"}
    payload.update(body)
    return client.post("/api/auth/register", json=payload)


def test_register_customer(client, db, firebase_claims):
    resp = _register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["token_type"] == "bearer"
    assert "password_hash" not in body["user"]

    stored = db.doc("USERS/fb_user_1")
    assert stored["role"] == "customer"
    assert stored["email_verified"] is True
    assert stored["balance"] == 0.0
    assert stored["password_hash"] != "secret123"


def test_register_duplicate_is_conflict(client, firebase_claims):
    assert _register(client).status_code == 201
    assert _register(client).status_code == 409


def test_admin_cannot_self_register(client, firebase_claims):
    assert _register(client, role="admin").status_code == 403


def test_invalid_firebase_token(client, firebase_claims):
    assert _register(client, id_token="invalid-token-value").status_code == 401


def test_seller_registration_requires_store_fields(client, firebase_claims):
    assert _register(client, role="seller").status_code == 422


def test_seller_registration(client, db, firebase_claims):
    firebase_claims.update(uid="fb_seller_abc123", email="greens@freshcart.in")
    resp = _register(
        client,
        role="seller",
        store_name="Daily Greens",
        store_address="7 Station Road, Nashik",
        seller_category="vegetables",
        business_license="mh123456",
    )
    assert resp.status_code == 201
    stored = db.doc("USERS/fb_seller_abc123")
    assert stored["seller_unique_number"].startswith("SLR-")
    assert stored["seller_unique_number"].endswith("ABC123")
    assert stored["business_license"] == "MH123456"
    assert stored["email_verified"] is False
    assert stored["license_info"]["status"] == "pending"


def test_login_with_password(client, make_user):
    make_user("customer", uid="cust_login", email="login@freshcart.in", password_hash=get_password_hash("secret123"))
    resp = client.post("/api/auth/login", json={"email": "Login@FreshCart.in", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["uid"] == "cust_login"


def test_login_wrong_password(client, make_user):
    make_user("customer", email="wrong@freshcart.in", password_hash=get_password_hash("secret123"))
    resp = client.post("/api/auth/login", json={"email": "wrong@freshcart.in", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid email or password"


def test_login_locks_after_repeated_failures(client, make_user):
    make_user("customer", email="locked@freshcart.in", password_hash=get_password_hash("secret123"))
    for _ in range(5):
        client.post("/api/auth/login", json={"email": "locked@freshcart.in", "password": "bad"})
    resp = client.post("/api/auth/login", json={"email": "locked@freshcart.in", "password": "secret123"})
    assert resp.status_code == 429


def test_login_rejects_deactivated_account(client, make_user):
    make_user(
        "customer", email="off@freshcart.in", password_hash=get_password_hash("secret123"),
        is_active=False, account_status="suspended",
    )
    resp = client.post("/api/auth/login", json={"email": "off@freshcart.in", "password": "secret123"})
    assert resp.status_code == 403


def test_firebase_login_unknown_user(client, firebase_claims):
    resp = client.post("/api/auth/firebase", json={"id_token": "valid-token-value"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not registered"


def test_firebase_login_known_user(client, make_user, firebase_claims):
    make_user("customer", uid="fb_user_1", email="asha@freshcart.in")
    resp = client.post("/api/auth/firebase", json={"id_token": "valid-token-value"})
    assert resp.status_code == 200
    assert resp.json()["access_token"]


def test_refresh_rotates_and_old_token_is_rejected(client, firebase_claims):
    tokens = _register(client).json()
    resp = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    rotated = resp.json()
    assert rotated["refresh_token"] != tokens["refresh_token"]

    reused = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401


def test_access_token_is_not_a_refresh_token(client, firebase_claims):
    tokens = _register(client).json()
    resp = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401


def test_logout_revokes_refresh_token(client, firebase_claims):
    tokens = _register(client).json()
    assert client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200
    resp = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 401


def test_protected_route_rejects_garbage_token(client):
    resp = client.get("/api/notifications", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_deactivated_user_token_is_refused(client, db, make_user, auth_headers):
    uid = make_user("customer")
    headers = auth_headers(uid)
    db.collection("USERS").document(uid).update({"is_active": False})
    assert client.get("/api/notifications", headers=headers).status_code == 403


def test_change_password(client, make_user, auth_headers):
    uid = make_user("customer", email="pw@freshcart.in", password_hash=get_password_hash("oldpass1"))
    headers = auth_headers(uid)

    bad = client.post("/api/auth/change-password", json={"current_password": "nope", "new_password": "newpass1"},
                      headers=headers)
    assert bad.status_code == 401

    ok = client.post("/api/auth/change-password", json={"current_password": "oldpass1", "new_password": "newpass1"},
                     headers=headers)
    assert ok.status_code == 200
    login = client.post("/api/auth/login", json={"email": "pw@freshcart.in", "password": "newpass1"})
    assert login.status_code == 200
