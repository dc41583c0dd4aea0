import os
import logging
import uuid
import boto3
from botocore.client import Config

logger = logging.getLogger("core.storage")
logger.setLevel(logging.INFO)

# Env variables for the S3-compatible bucket
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "freshcart-media")
STORAGE_ENDPOINT = os.getenv("STORAGE_ENDPOINT")  # e.g. https://your-s3-endpoint
STORAGE_ACCESS_KEY = os.getenv("STORAGE_ACCESS_KEY")
STORAGE_SECRET_KEY = os.getenv("STORAGE_SECRET_KEY")

_s3_client = None


def get_s3_client():
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client(
            "s3",
            endpoint_url=STORAGE_ENDPOINT,
            aws_access_key_id=STORAGE_ACCESS_KEY,
            aws_secret_access_key=STORAGE_SECRET_KEY,
            config=Config(signature_version="s3v4"),
            region_name="us-east-1"
        )
        logger.info("🔥 S3 client initialized for bucket: %s", STORAGE_BUCKET)
    return _s3_client


def upload_file_bytes(key: str, file_bytes: bytes, content_type: str = "image/jpeg", public: bool = False) -> str:
    """
    Upload file bytes to the bucket and return a signed or public URL.
    """
    s3_client = get_s3_client()
    s3_client.put_object(
        Bucket=STORAGE_BUCKET,
        Key=key,
        Body=file_bytes,
        ContentType=content_type
    )

    if public:
        return f"{STORAGE_ENDPOINT}/{STORAGE_BUCKET}/{key}"

    return s3_client.generate_presigned_url(
        "get_object",
        Params={"Bucket": STORAGE_BUCKET, "Key": key},
        ExpiresIn=3600
    )


def delete_file(key: str) -> None:
    get_s3_client().delete_object(Bucket=STORAGE_BUCKET, Key=key)


def build_key(folder: str, owner_uid: str, filename: str) -> str:
    return f"{folder}/{owner_uid}/{uuid.uuid4()}_{filename}".replace(" ", "_")
