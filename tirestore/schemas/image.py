from io import BytesIO
from typing import Optional, Set, Tuple

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, field_validator, model_validator

# Pillow format name -> (canonical extension, MIME type)
PILLOW_FORMATS = {
    "jpeg": ("jpg", "image/jpeg"),
    "png": ("png", "image/png"),
    "webp": ("webp", "image/webp"),
    "gif": ("gif", "image/gif"),
}
EXTENSION_ALIASES = {"jpeg": "jpg"}

# Decompression bomb guard
MAX_PIXELS = 50_000_000


def probe_image(data: bytes) -> Tuple[str, int]:
    """Return (pillow format, pixel count); ("", 0) when Pillow cannot parse it."""
    try:
        with Image.open(BytesIO(data)) as image:
            image_format = (image.format or "").lower()
            pixels = image.width * image.height
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        return "", 0
    return image_format, pixels


class ImageUploadValidation(BaseModel):
    """Validated tire/banner image upload. Construction raises on bad input."""

    filename: str
    content_type: Optional[str] = None
    data: bytes
    max_size: int
    allowed_extensions: Set[str]
    detected_extension: Optional[str] = None
    mime_type: Optional[str] = None

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, value):
        return {EXTENSION_ALIASES.get(str(ext).lower(), str(ext).lower()) for ext in value}

    @model_validator(mode="after")
    def validate_image(self):
        if not self.data:
            raise ValueError("Empty file")
        if len(self.data) > self.max_size:
            raise ValueError(f"File size must be less than {self.max_size // (1024 * 1024)}MB")

        declared = self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""
        declared = EXTENSION_ALIASES.get(declared, declared)
        if declared not in self.allowed_extensions:
            raise ValueError("Only JPEG, PNG, WebP, and GIF images are allowed")

        image_format, pixels = probe_image(self.data)
        if image_format not in PILLOW_FORMATS:
            raise ValueError("Invalid image file")
        if pixels > MAX_PIXELS:
            raise ValueError("Image dimensions too large")

        extension, mime_type = PILLOW_FORMATS[image_format]
        if extension not in self.allowed_extensions:
            raise ValueError("Invalid file type")
        if declared != extension:
            raise ValueError("File extension does not match content")
        if self.content_type and self.content_type.lower() not in {mime_type, "application/octet-stream"}:
            raise ValueError("Invalid image MIME type")

        self.detected_extension = extension
        self.mime_type = mime_type
        return self
