# file: freshcart/client/auth_session.py
"""
Async API client with coalesced token refresh.

Every request carries the stored access token. A 401 triggers one refresh
through TokenRefreshCoordinator; requests that fail while a refresh is in
flight wait for it and reuse the new token instead of refreshing again.
If the refresh itself is rejected the stored session is cleared and
SessionExpiredError is raised to the caller.
"""
import asyncio
import json
import logging
import os
from typing import Awaitable, Callable, Optional

import httpx

from freshcart.client.cart_totals import estimate_cart_totals, matches_server_total

logger = logging.getLogger("client.session")

DEFAULT_TIMEOUT = 10.0


class SessionExpiredError(Exception):
    """The refresh token was rejected; the user must sign in again."""


# ---------------------------
# Session storage
# ---------------------------
class SessionStore:
    """JSON file holding the token pair and cached profiles keyed by uid."""

    def __init__(self, path: str):
        self.path = path
        self._data = self._read()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {"tokens": {}, "profiles": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable session file %s: %s", self.path, e)
            return {"tokens": {}, "profiles": {}}
        data.setdefault("tokens", {})
        data.setdefault("profiles", {})
        return data

    def _write(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f)

    @property
    def access_token(self) -> Optional[str]:
        return self._data["tokens"].get("access_token")

    @property
    def refresh_token(self) -> Optional[str]:
        return self._data["tokens"].get("refresh_token")

    @property
    def uid(self) -> Optional[str]:
        return self._data["tokens"].get("uid")

    def set_tokens(self, access_token: str, refresh_token: str, uid: Optional[str] = None):
        tokens = self._data["tokens"]
        tokens["access_token"] = access_token
        tokens["refresh_token"] = refresh_token
        if uid:
            tokens["uid"] = uid
        self._write()

    def get_profile(self, uid: str) -> Optional[dict]:
        return self._data["profiles"].get(uid)

    def set_profile(self, uid: str, profile: dict):
        self._data["profiles"][uid] = profile
        self._write()

    def clear(self):
        self._data = {"tokens": {}, "profiles": {}}
        self._write()


# ---------------------------
# Refresh coordination
# ---------------------------
Refresher = Callable[[str], Awaitable[dict]]


class TokenRefreshCoordinator:
    def __init__(self, store: SessionStore, refresher: Refresher):
        self.store = store
        self._refresher = refresher
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    async def acquire_token(self) -> Optional[str]:
        """Current access token; waits while a refresh is running."""
        async with self._lock:
            return self.store.access_token

    async def refresh(self, stale_token: Optional[str]) -> str:
        """
        Return a fresh access token for a caller whose request failed with
        `stale_token`. Only the first caller refreshes; later callers get
        the token it stored.
        """
        async with self._lock:
            current = self.store.access_token
            if current and current != stale_token:
                return current

            refresh_token = self.store.refresh_token
            if not refresh_token:
                self.store.clear()
                raise SessionExpiredError("No refresh token available")

            try:
                tokens = await self._refresher(refresh_token)
            except (SessionExpiredError, httpx.HTTPError) as e:
                logger.warning("Token refresh failed, clearing session: %s", e)
                self.store.clear()
                raise SessionExpiredError("Session expired, please sign in again") from e

            self.refresh_count += 1
            self.store.set_tokens(tokens["access_token"], tokens["refresh_token"])
            logger.info("Access token refreshed")
            return tokens["access_token"]


# ---------------------------
# HTTP client
# ---------------------------
class FreshCartClient:
    def __init__(
        self,
        base_url: str,
        store: SessionStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.store = store
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.coordinator = TokenRefreshCoordinator(store, self._refresh_tokens)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    async def _refresh_tokens(self, refresh_token: str) -> dict:
        resp = await self._http.post("/api/auth/refresh-token", json={"refresh_token": refresh_token})
        if resp.status_code != 200:
            raise SessionExpiredError(f"Refresh rejected with status {resp.status_code}")
        return resp.json()

    async def _send(self, method: str, url: str, token: Optional[str], **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        token = await self.coordinator.acquire_token()
        resp = await self._send(method, url, token, **kwargs)
        if resp.status_code != 401 or token is None:
            return resp

        # retried once; a second 401 goes back to the caller
        new_token = await self.coordinator.refresh(token)
        return await self._send(method, url, new_token, **kwargs)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    # ---------------------------
    # Session lifecycle
    # ---------------------------
    async def login(self, email: str, password: str) -> dict:
        resp = await self._http.post("/api/auth/login", json={"email": email, "password": password})
        resp.raise_for_status()
        body = resp.json()
        user = body.get("user") or {}
        self.store.set_tokens(body["access_token"], body["refresh_token"], uid=user.get("uid"))
        if user.get("uid"):
            self.store.set_profile(user["uid"], user)
        return user

    async def logout(self):
        refresh_token = self.store.refresh_token
        try:
            if refresh_token:
                await self._http.post("/api/auth/logout", json={"refresh_token": refresh_token})
        finally:
            self.store.clear()

    async def current_profile(self, refresh: bool = False) -> Optional[dict]:
        """Cached profile of the signed-in user, fetched from the API when missing."""
        uid = self.store.uid
        if not uid:
            return None
        cached = self.store.get_profile(uid)
        if cached and not refresh:
            return cached

        resp = await self.get(f"/api/users/{uid}")
        resp.raise_for_status()
        profile = resp.json().get("data") or {}
        self.store.set_profile(uid, profile)
        return profile

    # ---------------------------
    # Cart and checkout
    # ---------------------------
    async def cart(self) -> dict:
        """
        Server cart plus `estimate_matched`: whether the totals computed
        locally from the same items agree with the server's. The server
        figures are the ones returned either way.
        """
        resp = await self.get("/api/cart")
        resp.raise_for_status()
        cart = resp.json().get("data") or {}
        estimate = estimate_cart_totals(cart.get("items") or [])
        server_total = cart.get("total_amount", 0)
        matched = matches_server_total(estimate["total_amount"], server_total)
        if not matched:
            logger.warning("Cart estimate %.2f differs from server total %.2f", estimate["total_amount"], server_total)
        return {**cart, "estimate_matched": matched}

    async def checkout(
        self,
        payment_method: str,
        address_id: Optional[str] = None,
        delivery_address: Optional[dict] = None,
    ) -> dict:
        """Place an order for the current cart at the total the server last quoted."""
        cart = await self.cart()
        body = {"payment_method": payment_method, "expected_total": cart.get("total_amount", 0)}
        if address_id:
            body["address_id"] = address_id
        else:
            body["delivery_address"] = delivery_address
        resp = await self.post("/api/orders", json=body)
        resp.raise_for_status()
        return resp.json().get("data") or {}
