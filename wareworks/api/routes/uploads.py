import logging
import time

import anyio
from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.datastructures import UploadFile

from wareworks.api.deps import get_services
from wareworks.core.errors import StorageError
from wareworks.core.uploads import DEFAULT_CATEGORY, normalize_content_type, validate_upload
from wareworks.middleware.rate_limit import UPLOAD
from wareworks.schemas.public import UploadOut
from wareworks.services.container import Services

router = APIRouter(prefix="/api", tags=["uploads"])

logger = logging.getLogger("ww.storage")

MAX_FORM_FIELDS = 10


@router.post("/upload-file", response_model=UploadOut)
async def upload_file(request: Request, services: Services = Depends(get_services)):
    # Gates run before the multipart body is parsed.
    services.limiter(UPLOAD).enforce(request)
    services.csrf.enforce(request)
    settings = services.settings
    if not settings.enable_file_uploads:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="File uploads are disabled")

    async with request.form(max_files=1, max_fields=MAX_FORM_FIELDS) as form:
        file = form.get("file")
        if not isinstance(file, UploadFile):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
        raw_category = form.get("category")
        category = raw_category if isinstance(raw_category, str) and raw_category else DEFAULT_CATEGORY

        filename = validate_upload(file, category=category)
        data = await file.read()
        original_name = file.filename or filename
        content_type = normalize_content_type(file.content_type) or "application/octet-stream"

    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is empty")
    if len(data) > settings.max_document_bytes:
        limit_mb = settings.max_document_bytes // (1024 * 1024)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size is {limit_mb}MB",
        )

    key = f"uploads/{int(time.time() * 1000)}_{filename}"
    try:
        stored = await anyio.to_thread.run_sync(
            lambda: services.documents.save(key, filename=original_name, content_type=content_type, data=data)
        )
    except StorageError as exc:
        logger.error("upload_store_failed", extra={"key": key, "error": str(exc)})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed") from exc

    logger.info("upload_stored", extra={"key": key, "size": stored.size, "category": category})
    return UploadOut(key=stored.key, url=stored.url)
