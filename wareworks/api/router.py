from fastapi import APIRouter

from wareworks.api.routes import config
from wareworks.api.routes import csrf
from wareworks.api.routes import downloads
from wareworks.api.routes import submissions
from wareworks.api.routes import uploads

api_router = APIRouter()
api_router.include_router(csrf.router)
api_router.include_router(submissions.router)
api_router.include_router(downloads.router)
api_router.include_router(config.router)
api_router.include_router(uploads.router)
