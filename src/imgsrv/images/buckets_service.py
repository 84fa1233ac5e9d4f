from logging import Logger

from imgsrv.config import AppSettings
from imgsrv.images.storage_client import StorageClient
from imgsrv.models import BucketStatus, BucketsInfo


class BucketsService:
    """ Makes sure the uploads bucket and the cache bucket exist before the first request """
    _app_settings: AppSettings
    _storage_client: StorageClient
    _logger: Logger

    def __init__(self, app_settings: AppSettings, storage_client: StorageClient, l: Logger):
        self._app_settings = app_settings
        self._storage_client = storage_client
        self._logger = l

    def _required_buckets(self) -> dict[str, int]:
        """ Bucket name -> life time in days """
        result = {self._app_settings.uploads_bucket: 0}
        if self._app_settings.cache_enabled:
            result[self._app_settings.cache_bucket] = self._app_settings.cache_life_time_days
        return result

    async def _ensure_bucket(self, bucket_name: str, life_time_days: int) -> BucketStatus:
        try:
            created = await self._storage_client.try_create_bucket(bucket_name, life_time_days)
        except Exception:
            self._logger.exception(f"Bucket {bucket_name} is not available")
            return BucketStatus.error

        if not created:
            self._logger.info(f"Bucket {bucket_name} exists")
            return BucketStatus.exists

        expiration = f"files expire in {life_time_days} days" if life_time_days else "files never expire"
        self._logger.info(f"Bucket {bucket_name} was created, {expiration}")
        return BucketStatus.created

    async def create_buckets(self) -> BucketsInfo:
        buckets = {name: await self._ensure_bucket(name, days) for name, days in self._required_buckets().items()}
        return BucketsInfo(buckets=buckets, error=BucketStatus.error in buckets.values())
