import io
from datetime import date, timedelta

import pytest
from PIL import Image

DETAILS = {
    "full_name": "Ravi Kumar",
    "phone_number": "9876543210",
    "address": "42 Lake View Road, Bengaluru",
    "driving_license": {"license_number": "ka0120200001", "expiry_date": "2031-05-01"},
    "vehicle": {"type": "bike", "registration_number": "ka01ab1234", "make": "Honda"},
    "emergency_contact": {"name": "Sita Kumar", "relationship": "Sister", "phone_number": "9123456780"},
}
DOCUMENTS = [("license", "front"), ("license", "back"), ("vehicle", "front"), ("vehicle", "back"), ("vehicle", "rc")]


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (32, 32), color=(10, 120, 40)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def uploads(monkeypatch):
    stored = {}

    def fake_upload(key, file_bytes, content_type="image/jpeg", public=False):
        stored[key] = file_bytes
        return f"https://storage.freshcart.in/{key}"

    monkeypatch.setattr("freshcart.Delivery.routes.upload_file_bytes", fake_upload)
    monkeypatch.setattr("freshcart.Delivery.routes.delete_file", lambda key: stored.pop(key, None))
    return stored


@pytest.fixture
def partner(make_user):
    return make_user("delivery", vehicle_type="bike")


def _upload(client, headers, document_type, image_type):
    return client.post(
        f"/api/delivery-verification/documents/{document_type}/{image_type}",
        files={"file": ("doc.png", _png_bytes(), "image/png")},
        headers=headers,
    )


def _complete_submission(client, headers):
    assert client.put("/api/delivery-verification", json=DETAILS, headers=headers).status_code == 200
    for document_type, image_type in DOCUMENTS:
        assert _upload(client, headers, document_type, image_type).status_code == 200
    return client.post("/api/delivery-verification/submit", headers=headers)


def test_status_before_starting(client, partner, auth_headers):
    resp = client.get("/api/delivery-verification/status", headers=auth_headers(partner))
    assert resp.json()["data"]["status"] == "not_started"


def test_only_delivery_partners(client, customer, auth_headers):
    assert client.get("/api/delivery-verification/status", headers=auth_headers(customer)).status_code == 403


def test_save_details(client, db, partner, auth_headers):
    resp = client.put("/api/delivery-verification", json=DETAILS, headers=auth_headers(partner))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "pending"
    assert data["completion_percentage"] == 0
    assert data["driving_license"]["license_number"] == "KA0120200001"
    assert data["vehicle"]["registration_number"] == "KA01AB1234"
    assert db.doc(f"DELIVERY_VERIFICATIONS/{partner}")["verification_history"][0]["comments"] == "Initial submission"


def test_upload_rejects_non_images(client, partner, auth_headers, uploads):
    resp = client.post(
        "/api/delivery-verification/documents/license/front",
        files={"file": ("doc.txt", b"just some text", "text/plain")},
        headers=auth_headers(partner),
    )
    assert resp.status_code == 400
    assert uploads == {}


def test_license_has_no_rc_image(client, partner, auth_headers, uploads):
    assert _upload(client, auth_headers(partner), "license", "rc").status_code == 400


def test_upload_tracks_completion(client, partner, auth_headers, uploads):
    headers = auth_headers(partner)
    client.put("/api/delivery-verification", json=DETAILS, headers=headers)
    resp = _upload(client, headers, "license", "front")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["completion_percentage"] == 20
    assert data["driving_license"]["front_image"]["url"].startswith("https://storage.freshcart.in/")


def test_submit_requires_all_documents(client, partner, auth_headers, uploads):
    headers = auth_headers(partner)
    client.put("/api/delivery-verification", json=DETAILS, headers=headers)
    _upload(client, headers, "license", "front")
    resp = client.post("/api/delivery-verification/submit", headers=headers)
    assert resp.status_code == 400
    assert "20% complete" in resp.json()["detail"]


def test_remove_document(client, partner, auth_headers, uploads):
    headers = auth_headers(partner)
    _upload(client, headers, "vehicle", "rc")
    assert len(uploads) == 1
    resp = client.delete("/api/delivery-verification/documents/vehicle/rc", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["vehicle"]["rc_image"] is None
    assert uploads == {}


def test_submitted_record_is_locked(client, partner, auth_headers, uploads):
    headers = auth_headers(partner)
    resp = _complete_submission(client, headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "under_review"

    assert client.put("/api/delivery-verification", json=DETAILS, headers=headers).status_code == 409
    assert _upload(client, headers, "license", "front").status_code == 409
    assert client.post("/api/delivery-verification/submit", headers=headers).status_code == 409


def test_admin_approves_verification(client, db, partner, admin, auth_headers, uploads):
    _complete_submission(client, auth_headers(partner))
    resp = client.put(
        f"/api/admin/delivery-verifications/{partner}/review",
        json={"action": "approve", "comments": "All good"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "approved"
    assert db.doc(f"USERS/{partner}")["is_verified"] is True

    notes = db.collection_docs(f"NOTIFICATIONS/{partner}/items")
    assert [n["type"] for n in notes.values()] == ["delivery-verification"]

    again = client.put(
        f"/api/admin/delivery-verifications/{partner}/review",
        json={"action": "approve"},
        headers=auth_headers(admin),
    )
    assert again.status_code == 409


def test_rejection_needs_a_reason(client, partner, admin, auth_headers, uploads):
    _complete_submission(client, auth_headers(partner))
    resp = client.put(
        f"/api/admin/delivery-verifications/{partner}/review",
        json={"action": "reject"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 422


def test_resubmission_unlocks_editing(client, db, partner, admin, auth_headers, uploads):
    headers = auth_headers(partner)
    _complete_submission(client, headers)
    resp = client.put(
        f"/api/admin/delivery-verifications/{partner}/review",
        json={"action": "request_resubmission", "rejection_reason": "RC image is blurred"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert db.doc(f"USERS/{partner}")["is_verified"] is False

    assert _upload(client, headers, "vehicle", "rc").status_code == 200
    assert client.post("/api/delivery-verification/submit", headers=headers).status_code == 200

    history = db.doc(f"DELIVERY_VERIFICATIONS/{partner}")["verification_history"]
    assert [h["status"] for h in history] == [
        "pending", "under_review", "resubmission_required", "under_review",
    ]


def test_cannot_approve_incomplete_record(client, partner, admin, auth_headers):
    client.put("/api/delivery-verification", json=DETAILS, headers=auth_headers(partner))
    resp = client.put(
        f"/api/admin/delivery-verifications/{partner}/review",
        json={"action": "approve"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 400


def test_admin_listing_and_stats(client, partner, make_user, admin, auth_headers, uploads):
    _complete_submission(client, auth_headers(partner))
    other = make_user("delivery")
    client.put(
        "/api/delivery-verification", json={**DETAILS, "full_name": "Anil Shetty"}, headers=auth_headers(other),
    )

    headers = auth_headers(admin)
    listing = client.get("/api/admin/delivery-verifications", params={"status": "under_review"}, headers=headers)
    assert [v["uid"] for v in listing.json()["data"]] == [partner]

    search = client.get("/api/admin/delivery-verifications", params={"search": "anil"}, headers=headers)
    assert search.json()["total"] == 1

    stats = client.get("/api/admin/delivery-verifications/stats", headers=headers).json()["data"]
    assert stats["counts"]["under_review"] == 1
    assert stats["counts"]["pending"] == 1
    assert stats["total"] == 2


def test_admin_routes_need_admin(client, partner, auth_headers):
    assert client.get("/api/admin/delivery-verifications", headers=auth_headers(partner)).status_code == 403


def test_license_expiry_reminders(db, verified_partner):
    from freshcart.Delivery.verification import send_license_expiry_reminders

    soon = (date.today() + timedelta(days=10)).isoformat()
    db.collection("DELIVERY_VERIFICATIONS").document(verified_partner).set(
        {"driving_license": {"expiry_date": soon}}, merge=True,
    )
    assert send_license_expiry_reminders(days_ahead=30) == 1
    notes = db.collection_docs(f"NOTIFICATIONS/{verified_partner}/items")
    assert list(notes.values())[0]["title"] == "Driving license expiring"
