from fastapi import APIRouter
from starlette import status
from starlette.responses import Response

from imgsrv.healthcheck.dependencies import HealthCheckServiceDep
from imgsrv.healthcheck.service import HealthReport

hc_route = APIRouter()


@hc_route.get("/hc")
@hc_route.get("/health")
def get_health_check(response: Response, hc_service: HealthCheckServiceDep) -> HealthReport:
    result = hc_service.report()
    if not result.healthy:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return result
