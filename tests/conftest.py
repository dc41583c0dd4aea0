import copy
import os
import uuid
from datetime import date, datetime, timedelta, timezone

os.environ.setdefault("SECRET_KEY", "freshcart-test-secret-key-0123456789abcdef")
os.environ["SCHEDULER_ENABLED"] = "0"
os.environ["PUSH_NOTIFICATIONS_ENABLED"] = "0"
os.environ["ALLOW_UID_HEADER"] = "0"

import pytest
from fastapi.testclient import TestClient
from google.api_core.exceptions import NotFound

_MISSING = object()


# ==============================
# In-memory Firestore
# ==============================
def _deep_merge(target: dict, data: dict) -> dict:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _matches(value, op, expected) -> bool:
    if value is _MISSING:
        return False
    try:
        if op == "==":
            return value == expected
        if op == "!=":
            return value != expected
        if op == "<":
            return value < expected
        if op == "<=":
            return value <= expected
        if op == ">":
            return value > expected
        if op == ">=":
            return value >= expected
        if op == "in":
            return value in expected
        if op == "array_contains":
            return expected in (value or [])
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator {op}")


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self._path = path
        self.id = path[-1]

    def collection(self, name):
        return FakeCollection(self._db, self._path + (name,))

    def get(self, transaction=None):
        return FakeSnapshot(self, copy.deepcopy(self._db.docs.get(self._path)))

    def set(self, data, merge=False):
        if merge and self._path in self._db.docs:
            _deep_merge(self._db.docs[self._path], data)
        else:
            self._db.docs[self._path] = copy.deepcopy(data)

    def update(self, data):
        if self._path not in self._db.docs:
            raise NotFound(f"No document to update: {'/'.join(self._path)}")
        self._db.docs[self._path].update(copy.deepcopy(data))

    def delete(self):
        self._db.docs.pop(self._path, None)


class FakeQuery:
    def __init__(self, db, path, filters=(), limit=None, order=None):
        self._db = db
        self._path = path
        self._filters = filters
        self._limit = limit
        self._order = order

    def where(self, field, op, value):
        return FakeQuery(self._db, self._path, self._filters + ((field, op, value),), self._limit, self._order)

    def limit(self, count):
        return FakeQuery(self._db, self._path, self._filters, count, self._order)

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._db, self._path, self._filters, self._limit, (field, direction))

    def stream(self):
        depth = len(self._path)
        results = []
        for path, data in list(self._db.docs.items()):
            if len(path) != depth + 1 or path[:depth] != self._path:
                continue
            if all(_matches(data.get(f, _MISSING), op, v) for f, op, v in self._filters):
                results.append(FakeSnapshot(FakeDocument(self._db, path), copy.deepcopy(data)))
        if self._order:
            field, direction = self._order
            results.sort(key=lambda s: s.to_dict().get(field) or "", reverse=direction == "DESCENDING")
        if self._limit is not None:
            results = results[: self._limit]
        return iter(results)

    def get(self):
        return list(self.stream())


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocument(self._db, self._path + (doc_id or uuid.uuid4().hex[:20],))

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeWriteBatch:
    """Buffers writes until commit; used for both batches and transactions."""

    def __init__(self):
        self._writes = []

    def set(self, ref, data, merge=False):
        data = copy.deepcopy(data)
        self._writes.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, data):
        data = copy.deepcopy(data)
        self._writes.append(lambda: ref.update(data))

    def delete(self, ref):
        self._writes.append(ref.delete)

    def commit(self):
        writes, self._writes = self._writes, []
        for write in writes:
            write()


class FakeFirestore:
    project = "freshcart-test"

    def __init__(self):
        self.docs = {}

    def collection(self, name):
        return FakeCollection(self, (name,))

    def batch(self):
        return FakeWriteBatch()

    def transaction(self):
        return FakeWriteBatch()

    # test helpers
    def doc(self, path: str):
        return copy.deepcopy(self.docs.get(tuple(path.split("/"))))

    def collection_docs(self, path: str) -> dict:
        prefix = tuple(path.split("/"))
        return {
            key[-1]: copy.deepcopy(value)
            for key, value in self.docs.items()
            if len(key) == len(prefix) + 1 and key[: len(prefix)] == prefix
        }


def _fake_transactional(fn):
    def run(transaction, *args, **kwargs):
        result = fn(transaction, *args, **kwargs)
        transaction.commit()
        return result
    return run


# ==============================
# Fixtures
# ==============================
@pytest.fixture(autouse=True)
def db(monkeypatch):
    from google.cloud import firestore

    from freshcart.core import config, firebase
    from freshcart.core.rate_limit import limiter

    fake = FakeFirestore()
    monkeypatch.setattr(firebase, "_db", fake)
    monkeypatch.setattr(firestore, "transactional", _fake_transactional)
    monkeypatch.setattr(config, "PUSH_NOTIFICATIONS_ENABLED", False)
    limiter.reset()
    return fake


@pytest.fixture
def client():
    from freshcart.main import app
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(role="customer", uid=None, **fields):
        uid = uid or f"{role}_{uuid.uuid4().hex[:8]}"
        now = datetime.now(timezone.utc).isoformat()
        data = {
            "uid": uid,
            "email": f"{uid}@freshcart.in",
            "name": f"Test {role.title()}",
            "role": role,
            "provider": "email",
            "email_verified": True,
            "is_active": True,
            "account_status": "active",
            "balance": 0.0,
            "created_at": now,
            "updated_at": now,
        }
        data.update(fields)
        db.collection("USERS").document(uid).set(data)
        return uid
    return _make


@pytest.fixture
def auth_headers(db):
    from freshcart.core.tokens import create_access_token

    def _headers(uid):
        role = db.doc(f"USERS/{uid}")["role"]
        token = create_access_token({"sub": uid, "role": role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def seller(make_user):
    return make_user(
        "seller",
        store_name="Green Basket",
        store_address="12 Market Road, Pune",
        seller_category="vegetables",
        seller_unique_number="SLR-2601-AAA111",
        branch_stores=[],
        linked_branch_of=[],
        license_info={"status": "approved", "license_number": "MH123456"},
    )


@pytest.fixture
def customer(make_user):
    return make_user("customer")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_product(db):
    def _make(seller_uid, product_id=None, price=100.0, stock=10, **fields):
        product_id = product_id or uuid.uuid4().hex[:10]
        data = {
            "name": f"Product {product_id}",
            "category": "vegetables",
            "price": price,
            "mrp_price": price,
            "stock": stock,
            "low_stock_threshold": 3,
            "images": [],
            "approval_status": "approved",
            "is_active": True,
            "seller_uid": seller_uid,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        data.update(fields)
        db.collection("PRODUCTS").document(seller_uid).collection("items").document(product_id).set(data)
        return product_id
    return _make


@pytest.fixture
def verified_partner(db, make_user):
    uid = make_user("delivery", vehicle_type="bike", is_verified=True)
    image = {"url": "https://cdn.freshcart.in/doc.jpg", "key": "doc.jpg"}
    db.collection("DELIVERY_VERIFICATIONS").document(uid).set({
        "uid": uid,
        "full_name": "Ravi Kumar",
        "phone_number": "9876543210",
        "address": "42 Lake View, Bengaluru",
        "driving_license": {
            "license_number": "KA0120200001",
            "expiry_date": (date.today() + timedelta(days=365)).isoformat(),
            "front_image": image,
            "back_image": image,
        },
        "vehicle": {
            "type": "bike",
            "registration_number": "KA01AB1234",
            "front_image": image,
            "back_image": image,
            "rc_image": image,
        },
        "status": "approved",
        "verification_history": [],
    })
    return uid
