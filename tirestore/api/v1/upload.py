from typing import List

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from tirestore.api.deps import require_admin
from tirestore.core.config import settings
from tirestore.core.exceptions import ValidationError
from tirestore.core.rate_limiter import group_limit, limiter
from tirestore.models.user import User
from tirestore.services.storage import StorageClient, get_storage
from tirestore.utils.image_upload import normalize_folder, upload_image
from tirestore.utils.response import success

router = APIRouter()
logger = structlog.get_logger()


@router.post("/single", response_model=dict, status_code=status.HTTP_201_CREATED)
@limiter.limit(group_limit("upload"))
def upload_single(
    request: Request,
    image: UploadFile = File(...),
    folder: str = Form("products"),
    storage: StorageClient = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    result = upload_image(storage, image, normalize_folder(folder))
    return success(data=result, message="Image uploaded successfully")


@router.post("/multiple", response_model=dict, status_code=status.HTTP_201_CREATED)
@limiter.limit(group_limit("upload"))
def upload_multiple(
    request: Request,
    images: List[UploadFile] = File(...),
    folder: str = Form("products"),
    storage: StorageClient = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    if len(images) > settings.MAX_FILES_PER_UPLOAD:
        raise ValidationError(f"At most {settings.MAX_FILES_PER_UPLOAD} files can be uploaded at once")

    folder = normalize_folder(folder)
    results = [upload_image(storage, image, folder) for image in images]
    return success(data=results, message=f"{len(results)} images uploaded successfully")


@router.delete("/delete", response_model=dict)
def delete_image(
    image_url: str = Query(..., alias="imageUrl", min_length=1),
    storage: StorageClient = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    key = storage.key_from_url(image_url)
    storage.delete(key)
    logger.info("image_deleted", key=key, admin_id=admin.id)
    return success(data={"key": key}, message="Image deleted successfully")


@router.get("/presigned-url", response_model=dict)
def presigned_url(
    key: str = Query(..., min_length=1, max_length=500),
    expires_in: int = Query(settings.PRESIGNED_URL_EXPIRES, alias="expiresIn", ge=60, le=7 * 24 * 3600),
    storage: StorageClient = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    if ".." in key or key.startswith("/"):
        raise ValidationError("Invalid key")
    url = storage.presign_get(key, expires_in)
    return success(data={"url": url, "key": key, "expiresIn": expires_in})
