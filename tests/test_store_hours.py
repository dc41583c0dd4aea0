from datetime import datetime, timezone

import pytest

from freshcart.Store.hours import compute_store_status, normalize_weekly

# Monday 2026-10-19, 10:30 in the store's timezone (UTC+05:30)
MONDAY_MORNING = datetime(2026, 10, 19, 5, 0, tzinfo=timezone.utc)
# Same Monday, 21:30 store time
MONDAY_NIGHT = datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)

WEEKLY = [
    {"day": "mon", "enabled": True, "intervals": [{"start": "09:00", "end": "13:00"}, {"start": "16:00", "end": "21:00"}]},
    {"day": "sun", "enabled": False, "intervals": []},
]


def _hours(**body):
    return {"mode": "auto", "weekly": WEEKLY, "overrides": [], **body}


# ---------------------------
# Status computation
# ---------------------------
def test_weekly_schedule_decides_in_auto_mode():
    assert compute_store_status(_hours(), now=MONDAY_MORNING)["is_open"] is True
    status = compute_store_status(_hours(), now=MONDAY_NIGHT)
    assert status["is_open"] is False
    assert status["reason"] == "weekly"
    assert status["now"].endswith("+05:30")


def test_interval_end_is_exclusive():
    at_one = datetime(2026, 10, 19, 7, 30, tzinfo=timezone.utc)  # 13:00 local
    assert compute_store_status(_hours(), now=at_one)["is_open"] is False


@pytest.mark.parametrize("mode, is_open", [("force_open", True), ("force_closed", False)])
def test_manual_modes_ignore_the_schedule(mode, is_open):
    status = compute_store_status(_hours(mode=mode), now=MONDAY_NIGHT if is_open else MONDAY_MORNING)
    assert status["is_open"] is is_open
    assert status["reason"] == "manual"


def test_override_wins_over_weekly():
    closed = _hours(overrides=[{"date": "2026-10-19", "type": "closed", "intervals": []}])
    status = compute_store_status(closed, now=MONDAY_MORNING)
    assert (status["is_open"], status["reason"]) == (False, "override-closed")

    late = _hours(overrides=[{"date": "2026-10-19", "type": "open", "intervals": [{"start": "20:00", "end": "23:00"}]}])
    status = compute_store_status(late, now=MONDAY_NIGHT)
    assert (status["is_open"], status["active_source"]) == (True, "override")


def test_disabled_day_is_closed():
    sunday = datetime(2026, 10, 18, 6, 0, tzinfo=timezone.utc)
    status = compute_store_status(_hours(), now=sunday)
    assert (status["is_open"], status["reason"]) == (False, "weekly-disabled")


def test_no_hours_means_closed():
    assert compute_store_status(None, now=MONDAY_MORNING)["is_open"] is False


def test_normalize_weekly_fills_every_day():
    weekly = normalize_weekly([{"day": "tue", "enabled": True, "intervals": []}])
    assert [d["day"] for d in weekly] == ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
    assert weekly[1]["enabled"] is False


# ---------------------------
# Routes
# ---------------------------
def test_seller_saves_hours(client, db, seller, auth_headers):
    resp = client.put(f"/api/users/{seller}/store-hours", json=_hours(), headers=auth_headers(seller))
    assert resp.status_code == 200
    stored = db.doc(f"USERS/{seller}")["working_hours"]
    assert len(stored["weekly"]) == 7
    assert stored["weekly"][0]["intervals"][1] == {"start": "16:00", "end": "21:00"}

    resp = client.get(f"/api/users/{seller}/store-hours", headers=auth_headers(seller))
    assert resp.json()["data"]["mode"] == "auto"


@pytest.mark.parametrize("weekly", [
    [{"day": "mon", "enabled": True, "intervals": [{"start": "09:00", "end": "13:00"}, {"start": "12:00", "end": "15:00"}]}],
    [{"day": "mon", "enabled": True, "intervals": [{"start": "22:00", "end": "02:00"}]}],
    [{"day": "mon", "enabled": True, "intervals": [{"start": "9:00", "end": "13:00"}]}],
    [{"day": "mon"}, {"day": "mon"}],
])
def test_bad_hours_are_rejected(client, seller, auth_headers, weekly):
    resp = client.put(f"/api/users/{seller}/store-hours", json=_hours(weekly=weekly), headers=auth_headers(seller))
    assert resp.status_code == 422


def test_open_override_needs_intervals(client, seller, auth_headers):
    body = _hours(overrides=[{"date": "2026-12-25", "type": "open"}])
    assert client.put(f"/api/users/{seller}/store-hours", json=body, headers=auth_headers(seller)).status_code == 422


def test_unverified_seller_cannot_manage_hours(client, make_user, auth_headers):
    uid = make_user("seller", email_verified=False)
    resp = client.get(f"/api/users/{uid}/store-hours", headers=auth_headers(uid))
    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_email_verification"] is True


def test_customers_have_no_store_hours(client, customer, auth_headers):
    assert client.get(f"/api/users/{customer}/store-hours", headers=auth_headers(customer)).status_code == 403


def test_public_store_status(client, db, seller, customer):
    db.collection("USERS").document(seller).set({"working_hours": {"mode": "force_open"}}, merge=True)
    resp = client.get(f"/api/users/{seller}/store-status")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["is_open"] is True
    assert data["store_name"] == "Green Basket"

    assert client.get(f"/api/users/{customer}/store-status").status_code == 404
