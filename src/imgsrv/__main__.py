import sys

import uvicorn
from loguru import logger

from imgsrv import __version__
from imgsrv.config import get_app_settings
from imgsrv.models import StorageBackend


def __configure_logger():
    app_settings = get_app_settings()
    logger.remove()
    logger.add(sys.stdout, level=app_settings.log_level.upper(), format=app_settings.log_fmt)
    logger.add(sys.stderr, level="ERROR", format=app_settings.log_fmt)
    if app_settings.log_file:
        logger.add(app_settings.log_file, level=app_settings.log_level.upper(), retention="10 days",
                   format=app_settings.log_fmt)


if __name__ == "__main__":
    __configure_logger()

    print(f"imgsrv v{__version__}")
    app_cfg = get_app_settings()
    cache_info = f"{app_cfg.cache_bucket} ({app_cfg.cache_life_time_days} days)" if app_cfg.cache_enabled else "<off>"
    print(f" * storage: {app_cfg.storage}"
          f" ({app_cfg.s3.endpoint if app_cfg.storage == StorageBackend.S3 else app_cfg.storage_dir})\n"
          f" * uploads bucket: {app_cfg.uploads_bucket}\n"
          f" * cache bucket: {cache_info}\n"
          f" * upload naming: {app_cfg.upload_naming}")

    l = logger.bind(source="core")
    l.info("Starting web host")

    uvicorn.run("imgsrv.main:create_app", factory=True, **app_cfg.uvicorn)
