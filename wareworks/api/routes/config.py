import logging
from datetime import datetime, timezone
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from wareworks.api.deps import get_services
from wareworks.middleware.rate_limit import API, client_ip
from wareworks.schemas.public import ConfigOut
from wareworks.services.container import Services

router = APIRouter(prefix="/api", tags=["config"])

logger = logging.getLogger("ww.security")


def _hostname(value: str) -> str:
    parsed = urlparse(value if "//" in value else f"//{value}")
    return (parsed.hostname or "").lower()


def is_allowed_origin(value: str | None, allowed_domains: list[str]) -> bool:
    """An absent origin is allowed; otherwise the host must be an allowed domain or a subdomain of one."""
    if not value:
        return True
    host = _hostname(value.strip())
    if not host:
        return False
    for domain in allowed_domains:
        domain = domain.strip().lower()
        if domain and (host == domain or host.endswith(f".{domain}")):
            return True
    return False


@router.get("/config", response_model=ConfigOut)
async def get_config(request: Request, response: Response, services: Services = Depends(get_services)):
    services.limiter(API).enforce(request)
    settings = services.settings
    origin = request.headers.get("origin") or request.headers.get("referer")
    if not is_allowed_origin(origin, settings.allowed_domains):
        logger.warning(
            "config_access_denied",
            extra={"origin": origin, "ip": client_ip(request), "user_agent": request.headers.get("user-agent")},
        )
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": "Forbidden", "message": "Access denied from this domain"},
        )

    response.headers["Cache-Control"] = "no-cache"
    return ConfigOut(
        version=settings.app_version,
        environment=settings.environment,
        last_updated=datetime.now(timezone.utc).isoformat(),
        admin_email=str(settings.admin_email),
        from_email=str(settings.from_email),
        max_file_size=settings.max_document_bytes,
        max_education_entries=settings.max_education_entries,
        max_employment_entries=settings.max_employment_entries,
        data_retention_hours=settings.data_retention_hours,
        enable_pdf_generation=settings.enable_pdf_generation,
        enable_email_notifications=settings.enable_email_notifications,
        enable_google_sheets=settings.enable_google_sheets,
        enable_file_uploads=settings.enable_file_uploads,
        enable_audit_logging=settings.enable_audit_logging,
        enable_debug_mode=settings.enable_debug_mode,
        default_language=settings.default_language,
        supported_languages=list(settings.supported_languages),
    )
