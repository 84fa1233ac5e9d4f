from contextlib import asynccontextmanager

from anyio import CapacityLimiter
from fastapi import FastAPI
from loguru import logger

from imgsrv import __version__
from imgsrv.config import AppSettings, get_app_settings
from imgsrv.healthcheck.routes import hc_route
from imgsrv.healthcheck.service import HealthCheckService
from imgsrv.images.buckets_service import BucketsService
from imgsrv.images.dependencies import create_storage_client
from imgsrv.images.routes import images_router
from imgsrv.images.storage_client import StorageClient


@asynccontextmanager
async def _lifespan(app: FastAPI):
    app_settings: AppSettings = app.state.settings
    app.state.worker_limiter = CapacityLimiter(app_settings.worker_threads)

    buckets_service = BucketsService(app_settings, app.state.storage_client, logger.bind(source="core"))
    hc_service = HealthCheckService(app_settings.storage)
    hc_service.set_buckets_info(await buckets_service.create_buckets())
    app.state.health_check_service = hc_service
    yield


def create_app(app_settings: AppSettings | None = None, storage_client: StorageClient | None = None) -> FastAPI:
    """
    Creates the web application
    :param app_settings: Settings, read from environment and config files if `None`
    :param storage_client: Storage, created from settings if `None`
    """
    settings = app_settings or get_app_settings()

    result = FastAPI(lifespan=_lifespan, title="imgsrv", version=__version__)
    result.state.settings = settings
    result.state.storage_client = storage_client or create_storage_client(settings)
    result.include_router(images_router)
    result.include_router(hc_route)
    return result
