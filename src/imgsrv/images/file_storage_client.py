import mimetypes
import os
import tempfile
from io import BytesIO
from pathlib import Path

import anyio.to_thread

from imgsrv.images.storage_client import StorageClient, StorageFileItem

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _etag(stat: os.stat_result) -> str:
    return f"{stat.st_mtime_ns:x}-{stat.st_size:x}"


class FileSystemStorageClient(StorageClient):
    """
    Stores files on a local disk: every bucket is a directory under the root directory.
    Writes go to a temporary file which is renamed over the destination, readers never see partial files.
    Exclusive writes hard link the temporary file instead, which fails when the destination exists.
    """
    _root_dir: Path

    def __init__(self, root_dir: str | Path):
        assert root_dir, "root_dir is required"

        self._root_dir = Path(root_dir).resolve()

    def _get_path(self, bucket: str, file_name: str) -> Path:
        bucket_dir = (self._root_dir / bucket).resolve()
        path = (bucket_dir / file_name).resolve()
        if bucket_dir.parent != self._root_dir or not path.is_relative_to(bucket_dir) or path == bucket_dir:
            raise ValueError(f"File '{file_name}' is outside of bucket '{bucket}'")
        return path

    def _stat(self, bucket: str, file_name: str) -> StorageFileItem | None:
        path = self._get_path(bucket, file_name)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None

        if not path.is_file():
            return None

        content_type = mimetypes.guess_type(path.name)[0] or _DEFAULT_CONTENT_TYPE
        return StorageFileItem(bucket=bucket, file_name=file_name, size=stat.st_size, content_type=content_type,
                               etag=_etag(stat))

    def _load(self, bucket: str, file_name: str) -> BytesIO | None:
        path = self._get_path(bucket, file_name)
        try:
            with open(path, 'rb') as file_data:
                return BytesIO(file_data.read())
        except (FileNotFoundError, IsADirectoryError):
            return None

    def _put(self, bucket: str, file_name: str, content: BytesIO, content_type: str,
             overwrite: bool) -> StorageFileItem:
        path = self._get_path(bucket, file_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, 'wb') as temp_file:
                temp_file.write(content.getvalue())
            if overwrite:
                os.replace(temp_name, path)
            else:
                # fails when the destination exists
                os.link(temp_name, path)
                os.unlink(temp_name)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

        stat = path.stat()
        return StorageFileItem(bucket=bucket, file_name=file_name, size=stat.st_size, content_type=content_type,
                               etag=_etag(stat))

    def _create_bucket(self, bucket: str) -> bool:
        bucket_dir = (self._root_dir / bucket).resolve()
        if bucket_dir.parent != self._root_dir:
            raise ValueError(f"Invalid bucket name '{bucket}'")

        if bucket_dir.is_dir():
            return False

        bucket_dir.mkdir(parents=True)
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
        # expiration is not supported on a local disk, files live forever
        return await anyio.to_thread.run_sync(self._create_bucket, bucket)
