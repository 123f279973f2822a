import logging

import anyio
from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse

from wareworks.api.deps import get_services
from wareworks.core.uploads import sanitize_filename
from wareworks.middleware.rate_limit import DOWNLOAD
from wareworks.services.container import Services
from wareworks.services.pdf_filler import PDF_MIME_TYPE
from wareworks.services.submissions import is_submission_id

router = APIRouter(prefix="/api", tags=["downloads"])

logger = logging.getLogger("ww.pdf")


@router.get("/download-application")
async def download_application(
    request: Request,
    submission_id: str | None = Query(None, alias="submissionId"),
    services: Services = Depends(get_services),
):
    services.limiter(DOWNLOAD).enforce(request)
    submission_id = (submission_id or "").strip()
    if not submission_id:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Submission ID is required"})
    if not is_submission_id(submission_id):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid submission ID"})

    document = services.archive.get(submission_id)
    if document is None:
        try:
            document = await anyio.to_thread.run_sync(services.pdf_filler.confirmation, submission_id)
        except Exception:  # noqa: BLE001
            logger.exception("confirmation_generation_failed", extra={"submission_id": submission_id})
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "PDF generation failed. Please contact support."},
            )

    filename = sanitize_filename(f"Wareworks_Application_{submission_id}.pdf")
    return Response(
        content=document.content,
        media_type=PDF_MIME_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache",
        },
    )
