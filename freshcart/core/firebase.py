# file: freshcart/core/firebase.py

import os
import json
import logging
import firebase_admin
from firebase_admin import auth, credentials, firestore as admin_firestore
from google.cloud import firestore

logger = logging.getLogger("core.firebase")
logger.setLevel(logging.INFO)

# ------------------------------
# Firestore (Firebase for text data)
# ------------------------------
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "freshcart-app")
CREDENTIAL_SOURCE = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

_db = None


def init_firebase():
    """Initialise the default Firebase app once, from a credentials file path or raw JSON."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    if not CREDENTIAL_SOURCE:
        raise ValueError("GOOGLE_APPLICATION_CREDENTIALS env var is not set")

    # Case 1: it's a file path
    if os.path.exists(CREDENTIAL_SOURCE):
        logger.info("Loading Firebase credentials from file: %s", CREDENTIAL_SOURCE)
        cred = credentials.Certificate(CREDENTIAL_SOURCE)
    else:
        # Case 2: it's a raw JSON string
        logger.info("Loading Firebase credentials from raw JSON string")
        cred = credentials.Certificate(json.loads(CREDENTIAL_SOURCE))

    app = firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
    logger.info("🔥 Firebase initialized with project: %s", app.project_id)
    return app


def get_db():
    """Return the Firestore client, creating it on first use."""
    global _db
    if _db is None:
        try:
            init_firebase()
            _db = admin_firestore.client()
            logger.info("🔥 Firestore client project: %s", _db.project)
        except Exception as e:
            logger.exception("Failed to initialize Firebase Firestore: %s", e)
            raise
    return _db


def run_transaction(callback, *args, **kwargs):
    """
    Run `callback(transaction, *args, **kwargs)` inside a Firestore transaction.
    Firestore retries the callback on contention, so it must only touch the
    transaction it is given.
    """
    transaction = get_db().transaction()
    return firestore.transactional(callback)(transaction, *args, **kwargs)


def verify_id_token(id_token: str) -> dict:
    """Verify a Firebase ID token, rejecting revoked sessions."""
    init_firebase()
    return auth.verify_id_token(id_token, check_revoked=True)


def snapshot_to_dict(doc, id_field: str = "id") -> dict:
    data = doc.to_dict() or {}
    data[id_field] = doc.id
    return data


__all__ = ["get_db", "run_transaction", "verify_id_token", "snapshot_to_dict"]
