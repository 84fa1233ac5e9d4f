from typing import Annotated

from logging import Logger
from anyio import CapacityLimiter
from fastapi import Request
from fastapi.params import Depends
from loguru import logger
from minio import Minio

from imgsrv.config import AppSettings
from imgsrv.images.derived_file_scanner import DerivedFileScanner, DerivedFileScannerImpl
from imgsrv.images.file_storage_client import FileSystemStorageClient
from imgsrv.images.storage_client import StorageClient, S3StorageClient
from imgsrv.images.transform_service import TransformService
from imgsrv.images.upload_service import UploadService
from imgsrv.models import StorageBackend


def create_storage_client(app_settings: AppSettings) -> StorageClient:
    if app_settings.storage == StorageBackend.S3:
        s3_settings = app_settings.s3
        minio_client = Minio(endpoint=s3_settings.endpoint, access_key=s3_settings.access_key,
                             secret_key=s3_settings.secret_key, region=s3_settings.region,
                             cert_check=s3_settings.cert_check, secure=s3_settings.secure)
        return S3StorageClient(minio_client)

    return FileSystemStorageClient(app_settings.storage_dir)


def _get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings


AppSettingsDep = Annotated[AppSettings, Depends(_get_app_settings)]


def _get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage_client


StorageClientDep = Annotated[StorageClient, Depends(_get_storage_client)]


def _get_worker_limiter(request: Request) -> CapacityLimiter | None:
    return getattr(request.app.state, 'worker_limiter', None)


WorkerLimiterDep = Annotated[CapacityLimiter | None, Depends(_get_worker_limiter)]


def _get_request_logger(file_name: str) -> Logger:
    return logger.bind(file_name=file_name)  # type: ignore


RequestLoggerDep = Annotated[Logger, Depends(_get_request_logger)]


def _get_file_scanner(storage_client: StorageClientDep, app_settings: AppSettingsDep) -> DerivedFileScanner:
    cache_bucket = app_settings.cache_bucket if app_settings.cache_enabled else None
    return DerivedFileScannerImpl(storage_client, app_settings.uploads_bucket, cache_bucket)


DerivedFileScannerDep = Annotated[DerivedFileScanner, Depends(_get_file_scanner)]


def _get_transform_service(storage_client: StorageClientDep,
                           app_settings: AppSettingsDep,
                           file_scanner: DerivedFileScannerDep,
                           limiter: WorkerLimiterDep,
                           request_logger: RequestLoggerDep) -> TransformService:
    cache_bucket = app_settings.cache_bucket if app_settings.cache_enabled else None
    return TransformService(storage_client, file_scanner, app_settings.uploads_bucket, cache_bucket,
                            app_settings.processing_options, limiter, request_logger)


TransformServiceDep = Annotated[TransformService, Depends(_get_transform_service)]


def _get_upload_service(storage_client: StorageClientDep, app_settings: AppSettingsDep) -> UploadService:
    return UploadService(storage_client, app_settings.uploads_bucket, app_settings.upload_naming,
                         app_settings.max_upload_bytes, logger.bind(source="upload"))  # type: ignore


UploadServiceDep = Annotated[UploadService, Depends(_get_upload_service)]
