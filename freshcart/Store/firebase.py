from typing import Optional

from freshcart.core.firebase import get_db


def products_collection(seller_uid: str):
    return get_db().collection("PRODUCTS").document(seller_uid).collection("items")


def product_ref(seller_uid: str, product_id: str):
    return products_collection(seller_uid).document(product_id)


def get_product(seller_uid: str, product_id: str, transaction=None) -> Optional[dict]:
    snap = product_ref(seller_uid, product_id).get(transaction=transaction)
    if not snap.exists:
        return None
    data = snap.to_dict() or {}
    data["id"] = product_id
    return data
