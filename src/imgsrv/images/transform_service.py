from io import BytesIO
from logging import Logger

from anyio import CapacityLimiter

from imgsrv.errors import ErrorKind, Result
from imgsrv.images.derived_file_scanner import DerivedFileScanner, ScanStatus
from imgsrv.images.image_processor import ProcessingOptions, process_image_async
from imgsrv.images.models import ImageData, TransformDescriptor
from imgsrv.images.storage_client import StorageClient


class TransformService:
    _storage_client: StorageClient
    _file_scanner: DerivedFileScanner
    _uploads_bucket: str
    _cache_bucket: str | None
    _options: ProcessingOptions
    _limiter: CapacityLimiter | None
    _logger: Logger

    def __init__(self, storage_client: StorageClient, file_scanner: DerivedFileScanner,
                 uploads_bucket: str, cache_bucket: str | None,
                 options: ProcessingOptions, limiter: CapacityLimiter | None, logger: Logger):
        assert storage_client is not None, "storage_client is required"
        assert file_scanner is not None, "file_scanner is required"
        assert uploads_bucket, "uploads_bucket is required"
        assert options is not None, "options is required"
        assert logger is not None, "logger is required"

        self._storage_client = storage_client
        self._file_scanner = file_scanner
        self._uploads_bucket = uploads_bucket
        self._cache_bucket = cache_bucket
        self._options = options
        self._limiter = limiter
        self._logger = logger

    async def transform(self, descriptor: TransformDescriptor) -> Result[ImageData]:
        scan_result = await self._file_scanner.scan_file(descriptor)
        if scan_result.status == ScanStatus.SOURCE_FILE_NOT_FOUND:
            self._logger.debug("Source file was not found")
            return Result.failure(ErrorKind.NOT_FOUND, f"File '{descriptor.file_name}' not found")

        if scan_result.status == ScanStatus.FILE_FOUND:
            assert scan_result.cache_key, "scan_result doesn't have cache_key"
            cached = await self._load_cached_file(scan_result.cache_key, descriptor)
            if cached:
                return Result.success(cached)

        source_data = await self._storage_client.load_file(self._uploads_bucket, descriptor.file_name)
        if source_data is None:
            self._logger.debug("Source file disappeared before it was loaded")
            return Result.failure(ErrorKind.NOT_FOUND, f"File '{descriptor.file_name}' not found")

        self._logger.debug("Source file was loaded into memory")
        with source_data:
            result = await process_image_async(source_data.getvalue(), descriptor, self._options, self._limiter)

        if result.error:
            self._logger.warning(f"Failed to transform file: {result.error.message}")
            return result

        image_data = result.value
        assert image_data, "transform result is missing"
        self._logger.debug(f"File was transformed into {descriptor.image_format}")

        if scan_result.cache_key and not image_data.from_source:
            await self._save_cached_file(scan_result.cache_key, image_data)

        return result

    async def _load_cached_file(self, cache_key: str, descriptor: TransformDescriptor) -> ImageData | None:
        assert self._cache_bucket, "cache is disabled"

        cached_data = await self._storage_client.load_file(self._cache_bucket, cache_key)
        if cached_data is None:
            self._logger.debug("Cached file expired before it was loaded")
            return None

        self._logger.debug("Found transformed file in cache")
        with cached_data:
            return ImageData(content_type=descriptor.image_format.mime_type, data=cached_data.getvalue())

    async def _save_cached_file(self, cache_key: str, image_data: ImageData) -> None:
        assert self._cache_bucket, "cache is disabled"

        try:
            await self._storage_client.put_file(self._cache_bucket, cache_key, BytesIO(image_data.data),
                                                content_type=image_data.content_type, reset_content=False)
            self._logger.debug("Transformed file was saved to cache")
        except Exception as e:
            self._logger.warning(f"Failed to save transformed file to cache: {e}")
