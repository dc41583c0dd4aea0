# file: freshcart/utils/images.py

import io

import filetype
from PIL import Image

MAX_FILE_SIZE_MB = 5
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


def validate_image(file_bytes: bytes, filename: str) -> None:
    """
    Validate uploaded image bytes:
    - Enforce max file size
    - Detect MIME type using filetype (extension is not trusted)
    """
    if not file_bytes:
        raise ValueError("Empty file")

    if len(file_bytes) > MAX_FILE_SIZE_MB * 1024 * 1024:
        raise ValueError("File too large")

    kind = filetype.guess(file_bytes)
    if not kind:
        raise ValueError("Cannot determine file type")

    if kind.mime not in ALLOWED_MIME_TYPES:
        raise ValueError(f"Unsupported image type: {kind.mime}")


def compress_to_720(image_bytes: bytes, quality: int = 80) -> bytes:
    """
    Resize and compress image to 1280x720 max, return as JPEG bytes.
    """
    with Image.open(io.BytesIO(image_bytes)) as img:
        img = img.convert("RGB")
        img.thumbnail((1280, 720))
        output = io.BytesIO()
        img.save(output, format="JPEG", quality=quality, optimize=True)
        return output.getvalue()
