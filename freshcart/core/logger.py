# file: freshcart/core/logger.py
import logging
import os

import google.cloud.logging

CLOUD_LOGGING = os.getenv("CLOUD_LOGGING", "0") == "1"

_client = None


def setup_cloud_logging() -> bool:
    """Attach Google Cloud Logging to the root logger when CLOUD_LOGGING=1."""
    global _client
    if not CLOUD_LOGGING or _client is not None:
        return _client is not None
    _client = google.cloud.logging.Client()
    _client.setup_logging()
    logging.getLogger("core.logger").info("☁️ Cloud logging enabled")
    return True


def log_to_cloud(category: str, severity: str, message: str, metadata: dict = None):
    logging.log(
        getattr(logging, severity.upper(), logging.INFO),
        f"[{category}] {message}",
        extra={"metadata": metadata or {}}
    )
