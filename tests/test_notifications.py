from freshcart.Notification.notification import create_notification


def test_list_and_mark_read(client, customer, auth_headers):
    headers = auth_headers(customer)
    first = create_notification(customer, "order-update", "Order placed", "We got your order")
    create_notification(customer, "wallet", "Refund", "Money is back in your wallet")

    resp = client.get("/api/notifications", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["unread_count"] == 2

    assert client.put(f"/api/notifications/{first}/read", headers=headers).status_code == 200
    unread = client.get("/api/notifications", params={"unread_only": True}, headers=headers).json()
    assert unread["unread_count"] == 1
    assert [n["type"] for n in unread["data"]] == ["wallet"]


def test_unknown_type_falls_back_to_system(db, customer):
    note_id = create_notification(customer, "mystery", "Hello", "Hi")
    assert db.doc(f"NOTIFICATIONS/{customer}/items/{note_id}")["type"] == "system"


def test_mark_all_read_and_stats(client, customer, auth_headers):
    headers = auth_headers(customer)
    for i in range(3):
        create_notification(customer, "order-update", f"Update {i}", "Status changed")
    resp = client.put("/api/notifications/mark-all-read", headers=headers)
    assert resp.json()["updated"] == 3

    stats = client.get("/api/notifications/stats", headers=headers).json()["data"]
    assert stats == {"total": 3, "unread": 0, "by_type": {"order-update": 3}}


def test_clear_read_only(client, db, customer, auth_headers):
    headers = auth_headers(customer)
    read_id = create_notification(customer, "system", "Old", "Seen already")
    create_notification(customer, "system", "New", "Not seen")
    client.put(f"/api/notifications/{read_id}/read", headers=headers)

    resp = client.delete("/api/notifications/clear-all", params={"read_only": True}, headers=headers)
    assert resp.json()["deleted"] == 1
    remaining = db.collection_docs(f"NOTIFICATIONS/{customer}/items")
    assert [n["title"] for n in remaining.values()] == ["New"]


def test_notifications_are_per_user(client, customer, make_user, auth_headers):
    other = make_user("customer")
    note_id = create_notification(customer, "system", "Private", "Only for you")
    assert client.delete(f"/api/notifications/{note_id}", headers=auth_headers(other)).status_code == 404
    assert client.delete(f"/api/notifications/{note_id}", headers=auth_headers(customer)).status_code == 200
