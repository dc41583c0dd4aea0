import pytest

from freshcart.core.field_crypto import decrypt_field, encrypt_field, mask_value
from freshcart.core.security import public_user

DETAILS = {
    "bank_name": "State Bank of India",
    "branch": "Koregaon Park",
    "ifsc": "sbin0001234",
    "account_holder_name": "Green Basket Traders",
    "account_number": "123456789012",
    "pan": "abcde1234f",
    "upi": "GreenBasket@okaxis",
}


def _set_pin(client, uid, headers, pin="482913", **body):
    return client.post(f"/api/users/{uid}/bank/pin", json={"pin": pin, **body}, headers=headers)


@pytest.fixture
def seller_with_pin(client, seller, auth_headers):
    assert _set_pin(client, seller, auth_headers(seller)).status_code == 200
    return seller


def test_field_encryption_hides_plaintext():
    token = encrypt_field("123456789012")
    assert "123456789012" not in token
    assert token != encrypt_field("123456789012")
    assert decrypt_field(token) == "123456789012"


def test_mask_value():
    assert mask_value("123456789012") == "••••••••9012"
    assert mask_value("abc") == "abc"
    assert mask_value("") == ""


def test_bank_details_need_a_pin(client, seller, auth_headers):
    resp = client.post(f"/api/users/{seller}/bank", json={"pin": "482913", **DETAILS}, headers=auth_headers(seller))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Set a bank PIN first"


def test_pin_must_be_six_digits(client, seller, auth_headers):
    assert _set_pin(client, seller, auth_headers(seller), pin="12ab56").status_code == 422


def test_save_and_view_masked_details(client, db, seller_with_pin, auth_headers):
    headers = auth_headers(seller_with_pin)
    resp = client.post(f"/api/users/{seller_with_pin}/bank", json={"pin": "482913", **DETAILS}, headers=headers)
    assert resp.status_code == 200

    stored = db.doc(f"USERS/{seller_with_pin}")
    assert stored["bank_pin_hash"] != "482913"
    bank = stored["bank_details"]
    assert bank["ifsc"] == "SBIN0001234"
    assert "account_number" not in bank
    assert "123456789012" not in str(bank)
    assert decrypt_field(bank["pan_enc"]) == "ABCDE1234F"

    resp = client.post(f"/api/users/{seller_with_pin}/bank/view", json={"pin": "482913"}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["account_number_masked"] == "••••••••9012"
    assert data["pan_masked"] == "••••••234F"
    assert data["upi_masked"] == "•••••••sket@okaxis"
    assert data["bank_name"] == "State Bank of India"


def test_profile_never_exposes_bank_secrets(client, db, seller_with_pin, auth_headers):
    headers = auth_headers(seller_with_pin)
    client.post(f"/api/users/{seller_with_pin}/bank", json={"pin": "482913", **DETAILS}, headers=headers)

    profile = client.get(f"/api/users/{seller_with_pin}", headers=headers).json()["data"]
    assert "bank_pin_hash" not in profile
    assert "bank_details" not in profile
    assert "bank_details" not in public_user(db.doc(f"USERS/{seller_with_pin}"))


def test_wrong_pin_locks_after_five_attempts(client, seller_with_pin, auth_headers):
    headers = auth_headers(seller_with_pin)
    url = f"/api/users/{seller_with_pin}/bank/view"
    for _ in range(5):
        assert client.post(url, json={"pin": "000000"}, headers=headers).status_code == 401
    assert client.post(url, json={"pin": "482913"}, headers=headers).status_code == 429


def test_correct_pin_resets_failures(client, db, seller_with_pin, auth_headers):
    headers = auth_headers(seller_with_pin)
    url = f"/api/users/{seller_with_pin}/bank/view"
    client.post(url, json={"pin": "000000"}, headers=headers)
    assert db.doc(f"bank_pin_attempts/{seller_with_pin}")["failed_count"] == 1
    assert client.post(url, json={"pin": "482913"}, headers=headers).status_code == 200
    assert db.doc(f"bank_pin_attempts/{seller_with_pin}") is None


def test_changing_pin_needs_current_pin(client, seller_with_pin, auth_headers):
    headers = auth_headers(seller_with_pin)
    assert _set_pin(client, seller_with_pin, headers, pin="111222").status_code == 401
    assert _set_pin(client, seller_with_pin, headers, pin="111222", current_pin="999999").status_code == 401

    resp = _set_pin(client, seller_with_pin, headers, pin="111222", current_pin="482913")
    assert resp.status_code == 200
    assert resp.json()["message"] == "PIN changed successfully"
    url = f"/api/users/{seller_with_pin}/bank/view"
    assert client.post(url, json={"pin": "111222"}, headers=headers).status_code == 200


def test_only_the_seller_handles_bank_details(client, seller, customer, admin, auth_headers):
    assert _set_pin(client, seller, auth_headers(admin)).status_code == 403
    assert _set_pin(client, customer, auth_headers(customer)).status_code == 403
