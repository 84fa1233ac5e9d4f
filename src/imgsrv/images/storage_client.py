import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO

import anyio.to_thread
from minio import Minio, S3Error
from minio.commonconfig import ENABLED, Filter
from minio.lifecycleconfig import LifecycleConfig, Rule, Expiration

_TTL_RULE_ID = "imgsrvTtlRule"


@dataclass(frozen=True, slots=True)
class StorageFileItem:
    """ Stored object metadata """
    bucket: str
    """ Bucket the object lives in """
    file_name: str
    """ Object key """
    size: int
    """ Size in bytes """
    content_type: str
    """ MIME type recorded at upload """
    etag: str
    """ Opaque version tag, changes whenever the content changes """


class StorageClient(ABC):
    """
    Blob storage organised in buckets. Implementations must be safe to call from concurrent requests.
    """

    @abstractmethod
    async def get_file_stat(self, bucket: str, file_name: str) -> StorageFileItem | None:
        """
        Reads object metadata without its content
        :param bucket: Bucket name
        :param file_name: Object key
        :return: :class:`StorageFileItem` or `None` when the object doesn't exist
        """
        pass

    @abstractmethod
    async def load_file(self, bucket: str, file_name: str) -> BytesIO | None:
        """
        Reads the whole object into memory
        :param bucket: Bucket name
        :param file_name: Object key
        :return: Content positioned at the beginning or `None` when the object doesn't exist
        """
        pass

    @abstractmethod
    async def put_file(self, bucket: str, file_name: str, content: BytesIO, content_type: str,
                       reset_content: bool = True, overwrite: bool = True) -> StorageFileItem:
        """
        Stores an object
        :param bucket: Bucket name
        :param file_name: Object key
        :param content: Whole content of the object
        :param content_type: MIME type to record
        :param reset_content: Rewind `content` after the write
        :param overwrite: Replace an existing object, otherwise raise :class:`FileExistsError`
        :return: Metadata of the stored object
        """
        pass

    @abstractmethod
    async def try_create_bucket(self, bucket: str, life_time_days: int) -> bool:
        """
        Creates a bucket unless it exists
        :param bucket: Bucket name
        :param life_time_days: Objects expire after this many days, zero keeps them forever
        :return: False when the bucket already existed
        """
        pass


def content_length(content: BytesIO) -> int:
    content.seek(0, os.SEEK_END)
    result = content.tell()
    content.seek(0, os.SEEK_SET)
    return result


class S3StorageClient(StorageClient):
    """
    S3 (minio) storage. The minio client is blocking, every call runs in a worker thread.
    """
    _minio: Minio

    def __init__(self, minio: Minio):
        assert minio is not None, "Minio client is required"

        self._minio = minio

    def _stat(self, bucket: str, file_name: str) -> StorageFileItem | None:
        try:
            obj = self._minio.stat_object(bucket_name=bucket, object_name=file_name)
        except S3Error:
            return None

        if not obj:
            return None

        return StorageFileItem(bucket=bucket, file_name=file_name, size=obj.size or 0,
                               content_type=obj.content_type or "", etag=obj.etag or "")

    def _load(self, bucket: str, file_name: str) -> BytesIO | None:
        try:
            response = self._minio.get_object(bucket_name=bucket, object_name=file_name)
        except S3Error:
            return None

        result = BytesIO()
        try:
            for chunk in response.stream():
                result.write(chunk)
        finally:
            response.close()
            response.release_conn()

        result.seek(0, os.SEEK_SET)
        return result

    def _put(self, bucket: str, file_name: str, content: BytesIO, content_type: str,
             overwrite: bool) -> StorageFileItem:
        # best effort, minio has no conditional put
        if not overwrite and self._stat(bucket, file_name):
            raise FileExistsError(f"Object {bucket}/{file_name} already exists")

        length = content_length(content)
        written = self._minio.put_object(bucket_name=bucket, object_name=file_name, data=content, length=length,
                                         content_type=content_type)
        return StorageFileItem(bucket=bucket, file_name=written.object_name, size=length,
                               content_type=content_type, etag=written.etag or "")

    def _create_bucket(self, bucket: str, life_time_days: int) -> bool:
        if self._minio.bucket_exists(bucket_name=bucket):
            return False

        self._minio.make_bucket(bucket_name=bucket)
        if life_time_days > 0:
            rule = Rule(status=ENABLED, rule_id=_TTL_RULE_ID, expiration=Expiration(days=life_time_days),
                        rule_filter=Filter(prefix=""))
            self._minio.set_bucket_lifecycle(bucket_name=bucket, config=LifecycleConfig(rules=[rule]))
        return True

    async def get_file_stat(self, bucket: str, file_name: str) -> StorageFileItem | None:
        return await anyio.to_thread.run_sync(self._stat, bucket, file_name)

    async def load_file(self, bucket: str, file_name: str) -> BytesIO | None:
        return await anyio.to_thread.run_sync(self._load, bucket, file_name)

    async def put_file(self, bucket: str, file_name: str, content: BytesIO, content_type: str,
                       reset_content: bool = True, overwrite: bool = True) -> StorageFileItem:
        assert content is not None, "Content is required"

        result = await anyio.to_thread.run_sync(self._put, bucket, file_name, content, content_type, overwrite)
        if reset_content:
            content.seek(0, os.SEEK_SET)
        return result

    async def try_create_bucket(self, bucket: str, life_time_days: int) -> bool:
        return await anyio.to_thread.run_sync(self._create_bucket, bucket, life_time_days)
