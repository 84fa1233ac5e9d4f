import hashlib
import os
from io import BytesIO
from logging import Logger

from starlette.datastructures import FormData, UploadFile

from imgsrv.errors import ErrorKind, Result
from imgsrv.images.descriptor_parser import is_valid_file_name
from imgsrv.images.storage_client import StorageClient, StorageFileItem
from imgsrv.models import UploadNaming

_DEFAULT_CONTENT_TYPE = "application/octet-stream"
_HASH_NAME_LENGTH = 32


def strip_extension(file_name: str) -> str:
    """ Converts 'example.png' into 'example', a name without extension is returned as is """
    base_name = os.path.basename(file_name.replace('\\', '/'))
    stem, dot, _ = base_name.rpartition('.')
    return stem if dot else base_name


def _first_file_part(form: FormData) -> UploadFile | None:
    for _, value in form.multi_items():
        if isinstance(value, UploadFile):
            return value
    return None


class UploadService:
    _storage_client: StorageClient
    _bucket: str
    _naming: UploadNaming
    _max_upload_bytes: int
    _logger: Logger

    def __init__(self, storage_client: StorageClient, bucket: str, naming: UploadNaming, max_upload_bytes: int,
                 logger: Logger):
        assert storage_client is not None, "storage_client is required"
        assert bucket, "bucket is required"
        assert max_upload_bytes > 0, "max_upload_bytes must be greater than 0"
        assert logger is not None, "logger is required"

        self._storage_client = storage_client
        self._bucket = bucket
        self._naming = naming
        self._max_upload_bytes = max_upload_bytes
        self._logger = logger

    async def ingest(self, form: FormData) -> Result[StorageFileItem]:
        """
        Stores the first file of a multipart form. The content is not validated, it's decoded only when served.
        :param form: Parsed multipart body
        :return: Stats of the stored file, its ``file_name`` is the name to request it by
        """
        upload_file = _first_file_part(form)
        if not upload_file:
            return Result.failure(ErrorKind.NO_FILE_PART, "The multi-part form doesn't contain a file")

        content = await upload_file.read(self._max_upload_bytes + 1)
        if len(content) > self._max_upload_bytes:
            return Result.failure(ErrorKind.PAYLOAD_TOO_LARGE,
                                  f"File is larger than {self._max_upload_bytes} bytes")
        if not content:
            return Result.failure(ErrorKind.EMPTY_FILE, "No file data was provided")

        if self._naming == UploadNaming.HASH:
            file_name = hashlib.sha256(content).hexdigest()[:_HASH_NAME_LENGTH]
        else:
            file_name = strip_extension(upload_file.filename or "")
            if not is_valid_file_name(file_name):
                return Result.failure(ErrorKind.INVALID_FILE_NAME,
                                      f"Invalid file name '{upload_file.filename}', use letters, digits, '.', "
                                      "'-' and '_'")

        existing_file = await self._storage_client.get_file_stat(self._bucket, file_name)
        if existing_file:
            if self._naming == UploadNaming.HASH:
                self._logger.debug(f"File {file_name} is already stored, skip it")
                return Result.success(existing_file)

            return Result.failure(ErrorKind.FILE_EXISTS, f"Another file with name '{file_name}' already exists")

        content_type = upload_file.content_type or _DEFAULT_CONTENT_TYPE
        try:
            stored_file = await self._storage_client.put_file(self._bucket, file_name, BytesIO(content),
                                                              content_type=content_type, reset_content=False,
                                                              overwrite=self._naming == UploadNaming.HASH)
        except FileExistsError:
            return Result.failure(ErrorKind.FILE_EXISTS, f"Another file with name '{file_name}' already exists")
        except Exception as e:
            self._logger.exception(f"Failed to store file {file_name}")
            return Result.failure(ErrorKind.STORAGE_WRITE_FAILURE, f"File contents could not be saved: {e}")

        self._logger.info(f"File {file_name} was uploaded, {stored_file.size} bytes")
        return Result.success(stored_file)
