import re
import uuid
from datetime import datetime

import structlog
from fastapi import UploadFile
from pydantic import ValidationError as PydanticValidationError

from tirestore.core.config import settings
from tirestore.core.exceptions import ValidationError
from tirestore.schemas.image import ImageUploadValidation
from tirestore.services.storage import StorageClient

logger = structlog.get_logger()

FOLDER_RE = re.compile(r"^[a-z0-9_-]+(/[a-z0-9_-]+)*$")


def normalize_folder(folder: str | None) -> str:
    folder = (folder or "products").strip().strip("/").lower()
    if not FOLDER_RE.match(folder):
        raise ValidationError("Invalid folder name")
    return folder


def validate_image_upload(file: UploadFile) -> ImageUploadValidation:
    """Read at most MAX_UPLOAD_SIZE + 1 bytes and validate them as an image."""
    max_size = settings.MAX_UPLOAD_SIZE
    file.file.seek(0)
    try:
        data = file.file.read(max_size + 1)
        try:
            return ImageUploadValidation.model_validate(
                {
                    "filename": file.filename or "",
                    "content_type": file.content_type,
                    "data": data,
                    "max_size": max_size,
                    "allowed_extensions": set(settings.ALLOWED_EXTENSIONS),
                }
            )
        except PydanticValidationError as exc:
            message = exc.errors()[0].get("msg", "Invalid image file").removeprefix("Value error, ")
            raise ValidationError(message) from exc
    finally:
        file.file.seek(0)


def upload_image(storage: StorageClient, file: UploadFile, folder: str) -> dict:
    """Validate and store one image under `{folder}/{uuid}.{ext}`."""
    image = validate_image_upload(file)
    key = f"{folder}/{uuid.uuid4()}.{image.detected_extension}"
    url = storage.upload_bytes(
        key,
        image.data,
        image.mime_type,
        {
            "originalName": (file.filename or "")[:200],
            "uploadedAt": datetime.utcnow().isoformat(),
        },
    )
    logger.info("image_uploaded", key=key, size=len(image.data))
    return {"imageUrl": url, "key": key, "originalName": file.filename, "size": len(image.data)}
