from fastapi import APIRouter, Depends, Request

from wareworks.api.deps import get_services
from wareworks.services.container import Services

router = APIRouter(prefix="/api", tags=["submissions"])


@router.post("/submit-application")
async def submit_application(request: Request, services: Services = Depends(get_services)):
    return await services.orchestrator.handle(request)
