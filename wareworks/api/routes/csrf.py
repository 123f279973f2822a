from fastapi import APIRouter, Depends, Request, Response

from wareworks.api.deps import get_services
from wareworks.middleware.rate_limit import API
from wareworks.schemas.public import CsrfTokenOut
from wareworks.services.container import Services

router = APIRouter(prefix="/api", tags=["csrf"])


@router.api_route("/csrf-token", methods=["GET", "POST"], response_model=CsrfTokenOut)
async def issue_csrf_token(request: Request, response: Response, services: Services = Depends(get_services)):
    services.limiter(API).enforce(request)
    token, secret = services.csrf.issue_token()
    services.csrf.set_secret_cookie(response, secret)
    response.headers["Cache-Control"] = "no-store"
    return services.csrf.token_response_body(token)
