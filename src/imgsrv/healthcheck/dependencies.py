from typing import Annotated

from fastapi import Request
from fastapi.params import Depends

from imgsrv.healthcheck.service import HealthCheckService


def _get_health_check_service(request: Request) -> HealthCheckService:
    return request.app.state.health_check_service


HealthCheckServiceDep = Annotated[HealthCheckService, Depends(_get_health_check_service)]
