def test_estimate_is_public(client):
    resp = client.get("/api/cart/estimate", params={"subtotal": "450"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data == {"subtotal": 450.0, "delivery_fee": 45.0, "total_amount": 495.0, "free_delivery_gap": 50.0}


def test_estimate_rejects_invalid_subtotal(client):
    assert client.get("/api/cart/estimate", params={"subtotal": "-3"}).status_code == 400
    assert client.get("/api/cart/estimate", params={"subtotal": "nan"}).status_code == 400
    assert client.get("/api/cart/estimate", params={"subtotal": "ten"}).status_code == 400


def test_cart_requires_customer(client, seller, auth_headers):
    assert client.get("/api/cart").status_code == 401
    assert client.get("/api/cart", headers=auth_headers(seller)).status_code == 403


def test_empty_cart(client, customer, auth_headers):
    resp = client.get("/api/cart", headers=auth_headers(customer))
    assert resp.status_code == 200
    cart = resp.json()["data"]
    assert cart["items"] == []
    assert cart["total_amount"] == 0
    assert cart["free_delivery_gap"] == 0


def test_add_item_computes_totals(client, db, customer, seller, make_product, auth_headers):
    product_id = make_product(seller, price=150.0, stock=5)
    resp = client.post(
        "/api/cart/add",
        json={"product_id": product_id, "seller_uid": seller, "quantity": 2},
        headers=auth_headers(customer),
    )
    assert resp.status_code == 200
    cart = resp.json()["data"]
    assert cart["subtotal"] == 300.0
    assert cart["delivery_fee"] == 60.0
    assert cart["total_amount"] == 360.0
    assert cart["item_count"] == 2
    assert db.doc(f"CARTS/{customer}")["total_amount"] == 360.0


def test_adding_same_product_merges_lines(client, customer, seller, make_product, auth_headers):
    product_id = make_product(seller, price=100.0, stock=5)
    body = {"product_id": product_id, "seller_uid": seller, "quantity": 2}
    client.post("/api/cart/add", json=body, headers=auth_headers(customer))
    resp = client.post("/api/cart/add", json=body, headers=auth_headers(customer))
    items = resp.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["quantity"] == 4


def test_add_beyond_stock_is_rejected(client, customer, seller, make_product, auth_headers):
    product_id = make_product(seller, stock=3)
    resp = client.post(
        "/api/cart/add",
        json={"product_id": product_id, "seller_uid": seller, "quantity": 4},
        headers=auth_headers(customer),
    )
    assert resp.status_code == 400
    assert "Only 3 items" in resp.json()["detail"]


def test_unapproved_product_cannot_be_added(client, customer, seller, make_product, auth_headers):
    product_id = make_product(seller, approval_status="pending")
    resp = client.post(
        "/api/cart/add",
        json={"product_id": product_id, "seller_uid": seller, "quantity": 1},
        headers=auth_headers(customer),
    )
    assert resp.status_code == 404


def test_update_and_remove_item(client, customer, seller, make_product, auth_headers):
    headers = auth_headers(customer)
    product_id = make_product(seller, price=250.0, stock=10)
    cart = client.post(
        "/api/cart/add", json={"product_id": product_id, "seller_uid": seller, "quantity": 1}, headers=headers,
    ).json()["data"]
    item_id = cart["items"][0]["item_id"]

    resp = client.put(f"/api/cart/update/{item_id}", json={"quantity": 2}, headers=headers)
    assert resp.status_code == 200
    cart = resp.json()["data"]
    assert cart["subtotal"] == 500.0
    assert cart["delivery_fee"] == 0.0

    resp = client.delete(f"/api/cart/remove/{item_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["items"] == []


def test_update_unknown_item_is_404(client, customer, auth_headers):
    resp = client.put("/api/cart/update/nope", json={"quantity": 1}, headers=auth_headers(customer))
    assert resp.status_code == 404


def test_zero_quantity_is_rejected(client, customer, seller, make_product, auth_headers):
    product_id = make_product(seller)
    resp = client.post(
        "/api/cart/add",
        json={"product_id": product_id, "seller_uid": seller, "quantity": 0},
        headers=auth_headers(customer),
    )
    assert resp.status_code == 422


def test_clear_cart(client, db, customer, seller, make_product, auth_headers):
    headers = auth_headers(customer)
    product_id = make_product(seller)
    client.post("/api/cart/add", json={"product_id": product_id, "seller_uid": seller, "quantity": 1}, headers=headers)
    resp = client.delete("/api/cart/clear", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["items"] == []
    assert db.doc(f"CARTS/{customer}") is None
