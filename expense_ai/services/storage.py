"""Receipt image storage on the local filesystem."""
import base64
import binascii
import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from expense_ai.config import get_settings
from expense_ai.errors import ValidationError

logger = logging.getLogger(__name__)

RECEIPTS_PREFIX = "/uploads/receipts/"
DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)
EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


def receipts_dir() -> Path:
    path = Path(get_settings().upload_dir) / "receipts"
    path.mkdir(parents=True, exist_ok=True)
    return path


def decode_image(image: str) -> tuple[bytes, str]:
    """Decode a data URL or bare base64 string into (bytes, mime type)."""
    settings = get_settings()
    match = DATA_URL.match(image.strip())
    mime, payload = (match.group("mime").lower(), match.group("data")) if match else ("image/jpeg", image)

    if mime not in settings.allowed_image_types_list:
        raise ValidationError(f"Unsupported image type: {mime}")

    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError):
        raise ValidationError("Image is not valid base64 data")

    if not raw:
        raise ValidationError("Image is empty")
    if len(raw) > settings.max_upload_size_bytes:
        raise ValidationError(
            f"Maximum file upload size limit ({settings.max_upload_size_mb} MB) exceeded."
        )
    return raw, mime


def save_receipt(user_id: int, image: str) -> dict:
    raw, mime = decode_image(image)
    file_name = f"{user_id}_{uuid.uuid4().hex}.{EXTENSIONS.get(mime, 'jpg')}"
    (receipts_dir() / file_name).write_bytes(raw)
    logger.info(f"Stored receipt {file_name} ({len(raw)} bytes) for user {user_id}")
    return {"image_url": f"{RECEIPTS_PREFIX}{file_name}", "file_name": file_name}


def delete_receipt(image_url: Optional[str]) -> bool:
    if not image_url or not image_url.startswith(RECEIPTS_PREFIX):
        return False
    file_name = Path(image_url[len(RECEIPTS_PREFIX):]).name
    path = receipts_dir() / file_name
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Failed to delete receipt {file_name}: {e}")
        return False
    return True
