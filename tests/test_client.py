import asyncio
import json

import httpx
import pytest

from freshcart.client.auth_session import FreshCartClient, SessionExpiredError, SessionStore
from freshcart.client.cart_totals import estimate_cart_totals, matches_server_total


class FakeApi:
    """Minimal stand-in for the auth endpoints and one protected resource."""

    def __init__(self, valid_token="new-access", refresh_ok=True, cart=None):
        self.valid_token = valid_token
        self.refresh_ok = refresh_ok
        self.refresh_calls = 0
        self.logged_out = []
        self.cart = cart or {}
        self.placed = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/refresh-token":
            self.refresh_calls += 1
            if not self.refresh_ok:
                return httpx.Response(401, json={"detail": "Refresh token revoked"})
            return httpx.Response(200, json={"access_token": self.valid_token, "refresh_token": "new-refresh"})
        if request.url.path == "/api/auth/login":
            body = json.loads(request.content)
            if body["password"] != "secret123":
                return httpx.Response(401, json={"detail": "Invalid email or password"})
            return httpx.Response(200, json={
                "access_token": self.valid_token,
                "refresh_token": "login-refresh",
                "user": {"uid": "cust_1", "email": body["email"], "role": "customer"},
            })
        if request.url.path == "/api/auth/logout":
            self.logged_out.append(json.loads(request.content)["refresh_token"])
            return httpx.Response(200, json={"message": "Logged out"})

        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"detail": "Invalid or expired token"})
        if request.url.path == "/api/users/cust_1":
            return httpx.Response(200, json={"data": {"uid": "cust_1", "name": "Asha Rao"}})
        if request.url.path == "/api/cart":
            return httpx.Response(200, json={"data": self.cart})
        if request.url.path == "/api/orders" and request.method == "POST":
            body = json.loads(request.content)
            self.placed.append(body)
            return httpx.Response(201, json={"data": {"id": "ORD1", "total_amount": body["expected_total"]}})
        return httpx.Response(200, json={"data": []})


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "session.json"))


def _client(api, store):
    return FreshCartClient("https://api.freshcart.test", store, transport=httpx.MockTransport(api))


def test_concurrent_401s_share_one_refresh(store):
    api = FakeApi()
    store.set_tokens("stale-access", "old-refresh", uid="cust_1")

    async def scenario():
        async with _client(api, store) as client:
            responses = await asyncio.gather(*(client.get("/api/notifications") for _ in range(5)))
            return [r.status_code for r in responses], client.coordinator.refresh_count

    statuses, refresh_count = asyncio.run(scenario())
    assert statuses == [200] * 5
    assert api.refresh_calls == 1
    assert refresh_count == 1
    assert store.access_token == "new-access"
    assert store.refresh_token == "new-refresh"
    assert store.uid == "cust_1"


def test_rejected_refresh_clears_session(store):
    api = FakeApi(refresh_ok=False)
    store.set_tokens("stale-access", "revoked-refresh", uid="cust_1")
    store.set_profile("cust_1", {"uid": "cust_1"})

    async def scenario():
        async with _client(api, store) as client:
            await client.get("/api/notifications")

    with pytest.raises(SessionExpiredError):
        asyncio.run(scenario())
    assert store.access_token is None
    assert store.get_profile("cust_1") is None


def test_anonymous_401_is_returned_without_refresh(store):
    api = FakeApi()

    async def scenario():
        async with _client(api, store) as client:
            return await client.get("/api/notifications")

    assert asyncio.run(scenario()).status_code == 401
    assert api.refresh_calls == 0


def test_login_profile_and_logout(tmp_path, store):
    api = FakeApi()

    async def scenario():
        async with _client(api, store) as client:
            user = await client.login("asha@freshcart.in", "secret123")
            cached = await client.current_profile()
            fresh = await client.current_profile(refresh=True)
            await client.logout()
            return user, cached, fresh

    user, cached, fresh = asyncio.run(scenario())
    assert user["uid"] == "cust_1"
    assert cached["email"] == "asha@freshcart.in"
    assert fresh == {"uid": "cust_1", "name": "Asha Rao"}
    assert api.logged_out == ["login-refresh"]
    assert store.access_token is None

    # the session file survives a restart
    reopened = SessionStore(str(tmp_path / "session.json"))
    assert reopened.access_token is None


def test_session_file_persists_tokens(tmp_path):
    path = str(tmp_path / "nested" / "session.json")
    SessionStore(path).set_tokens("a", "r", uid="u1")
    reopened = SessionStore(path)
    assert (reopened.access_token, reopened.refresh_token, reopened.uid) == ("a", "r", "u1")


def test_corrupt_session_file_is_discarded(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert SessionStore(str(path)).access_token is None


# ---------------------------
# Cart estimates
# ---------------------------
def test_estimate_cart_totals():
    items = [{"price": 120.0, "quantity": 2}, {"price": 35.5, "quantity": 1}]
    estimate = estimate_cart_totals(items)
    assert estimate == {
        "subtotal": 275.5,
        "delivery_fee": 55.1,
        "total_amount": 330.6,
        "item_count": 3,
        "free_delivery_gap": 224.5,
    }
    assert matches_server_total(estimate["total_amount"], 330.6)
    assert not matches_server_total(estimate["total_amount"], 331.0)


def test_estimate_empty_cart():
    assert estimate_cart_totals([]) == {
        "subtotal": 0.0, "delivery_fee": 0.0, "total_amount": 0.0, "item_count": 0, "free_delivery_gap": 0.0,
    }


CART_ITEMS = [{"price": 120.0, "quantity": 2}, {"price": 35.5, "quantity": 1}]


def _signed_in(store):
    store.set_tokens("new-access", "r", uid="cust_1")
    return store


def test_cart_estimate_agrees_with_server(store):
    api = FakeApi(cart={"items": CART_ITEMS, "subtotal": 275.5, "delivery_fee": 55.1, "total_amount": 330.6})

    async def scenario():
        async with _client(api, _signed_in(store)) as client:
            return await client.cart()

    cart = asyncio.run(scenario())
    assert cart["estimate_matched"] is True
    assert cart["total_amount"] == 330.6


def test_server_total_wins_when_estimate_differs(store):
    # server repriced an item since the client last saw it
    api = FakeApi(cart={"items": CART_ITEMS, "subtotal": 280.0, "delivery_fee": 56.0, "total_amount": 336.0})

    async def scenario():
        async with _client(api, _signed_in(store)) as client:
            return await client.cart()

    cart = asyncio.run(scenario())
    assert cart["estimate_matched"] is False
    assert cart["total_amount"] == 336.0


def test_checkout_pins_quoted_total(store):
    api = FakeApi(cart={"items": CART_ITEMS, "total_amount": 330.6})

    async def scenario():
        async with _client(api, _signed_in(store)) as client:
            return await client.checkout("COD", address_id="addr_1")

    order = asyncio.run(scenario())
    assert order["id"] == "ORD1"
    assert api.placed == [{"payment_method": "COD", "expected_total": 330.6, "address_id": "addr_1"}]
