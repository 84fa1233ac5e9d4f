from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from imgsrv.images.models import TransformDescriptor
from imgsrv.images.storage_client import StorageClient, StorageFileItem


class ScanStatus(Enum):
    SOURCE_FILE_NOT_FOUND = 1
    USE_SOURCE_FILE = 2
    FILE_FOUND = 3
    CREATE_NEW = 4


@dataclass(frozen=True, slots=True)
class ScanResult:
    status: ScanStatus = ScanStatus.SOURCE_FILE_NOT_FOUND
    source_file_stat: StorageFileItem | None = None
    file_stat: StorageFileItem | None = None
    cache_key: str | None = None


class DerivedFileScanner(ABC):

    @abstractmethod
    async def scan_file(self, descriptor: TransformDescriptor) -> ScanResult:
        """
        Looks up the source file of the descriptor and its already transformed copy
        :param descriptor: Requested transformation
        :return: :class:`ScanResult`
        """
        pass


class DerivedFileScannerImpl(DerivedFileScanner):
    _storage_client: StorageClient
    _uploads_bucket: str
    _cache_bucket: str | None

    def __init__(self, storage_client: StorageClient, uploads_bucket: str, cache_bucket: str | None):
        assert storage_client, "storage_client is required"
        assert uploads_bucket, "uploads_bucket is required"

        self._storage_client = storage_client
        self._uploads_bucket = uploads_bucket
        self._cache_bucket = cache_bucket

    async def scan_file(self, descriptor: TransformDescriptor) -> ScanResult:
        source_file_stat = await self._storage_client.get_file_stat(self._uploads_bucket, descriptor.file_name)
        if not source_file_stat:
            return ScanResult(status=ScanStatus.SOURCE_FILE_NOT_FOUND)

        if not self._cache_bucket:
            return ScanResult(status=ScanStatus.USE_SOURCE_FILE, source_file_stat=source_file_stat)

        cache_key = descriptor.cache_key(source_file_stat.etag)
        file_stat = await self._storage_client.get_file_stat(self._cache_bucket, cache_key)
        if file_stat:
            return ScanResult(status=ScanStatus.FILE_FOUND, source_file_stat=source_file_stat, file_stat=file_stat,
                              cache_key=cache_key)

        return ScanResult(status=ScanStatus.CREATE_NEW, source_file_stat=source_file_stat, cache_key=cache_key)
