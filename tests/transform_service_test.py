from io import BytesIO
from pathlib import Path
from unittest.mock import create_autospec

import anyio
import pytest
from anyio import CapacityLimiter
from loguru import logger
from PIL import Image

from imgsrv.errors import ErrorKind
from imgsrv.images.derived_file_scanner import DerivedFileScanner, DerivedFileScannerImpl, ScanResult, ScanStatus
from imgsrv.images.file_storage_client import FileSystemStorageClient
from imgsrv.images.image_processor import ProcessingOptions
from imgsrv.images.models import TransformDescriptor
from imgsrv.images.storage_client import StorageClient, StorageFileItem
from imgsrv.images.transform_service import TransformService
from imgsrv.models import ImageFormat, SamplingMethod

_uploads_bucket = 'uploads'
_cache_bucket = 'uploads-cache'
_source_file = StorageFileItem(bucket=_uploads_bucket, file_name='rust', size=1, content_type='image/png',
                               etag='valid')


def _size(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as image:
        return image.size


def _service(storage_client: StorageClient, cache_bucket: str | None = _cache_bucket,
             file_scanner: DerivedFileScanner | None = None) -> TransformService:
    scanner = file_scanner or DerivedFileScannerImpl(storage_client, _uploads_bucket, cache_bucket)
    return TransformService(storage_client, scanner, _uploads_bucket, cache_bucket, ProcessingOptions(),
                            CapacityLimiter(2), logger)


async def _upload(storage_client: StorageClient, file_name: str, data: bytes):
    await storage_client.put_file(_uploads_bucket, file_name, BytesIO(data), 'image/png')


@pytest.fixture
def storage_client(tmp_path: Path) -> FileSystemStorageClient:
    return FileSystemStorageClient(tmp_path)


@pytest.mark.anyio
async def test_transform_not_found(storage_client: FileSystemStorageClient):
    service = _service(storage_client)

    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG))

    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.anyio
async def test_transform_resizes_and_caches(storage_client: FileSystemStorageClient, make_image):
    # arrange
    await _upload(storage_client, 'rust', make_image(100, 50))
    service = _service(storage_client)
    descriptor = TransformDescriptor(file_name='rust', image_format=ImageFormat.WEBP, width=50)

    # act
    result = await service.transform(descriptor)

    # assert
    assert result.value.content_type == 'image/webp'
    assert _size(result.value.data) == (50, 25)
    source = await storage_client.get_file_stat(_uploads_bucket, 'rust')
    cached = await storage_client.load_file(_cache_bucket, descriptor.cache_key(source.etag))
    assert cached.getvalue() == result.value.data


@pytest.mark.anyio
async def test_transform_serves_cached_file(storage_client: FileSystemStorageClient, make_image):
    # arrange
    await _upload(storage_client, 'rust', make_image(100, 50))
    descriptor = TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG, width=10)
    source = await storage_client.get_file_stat(_uploads_bucket, 'rust')
    await storage_client.put_file(_cache_bucket, descriptor.cache_key(source.etag), BytesIO(b'cached bytes'),
                                  'image/png')
    service = _service(storage_client)

    # act
    result = await service.transform(descriptor)

    # assert
    assert result.value.data == b'cached bytes'
    assert result.value.content_type == 'image/png'


@pytest.mark.anyio
async def test_transform_ignores_cache_after_source_changed(storage_client: FileSystemStorageClient, make_image):
    # arrange
    service = _service(storage_client)
    descriptor = TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG, width=10)
    await _upload(storage_client, 'rust', make_image(100, 50))
    first = await service.transform(descriptor)

    # act
    await _upload(storage_client, 'rust', make_image(40, 40))
    second = await service.transform(descriptor)

    # assert
    assert _size(first.value.data) == (10, 5)
    assert _size(second.value.data) == (10, 10)


@pytest.mark.anyio
async def test_transform_without_cache(storage_client: FileSystemStorageClient, tmp_path: Path, make_image):
    # arrange
    await _upload(storage_client, 'rust', make_image(100, 50))
    service = _service(storage_client, cache_bucket=None)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.JPEG,
                                                         width=50, height=50, stretch=True))

    # assert
    assert _size(result.value.data) == (50, 50)
    assert not (tmp_path / _cache_bucket).exists()


@pytest.mark.anyio
async def test_transform_does_not_cache_source_bytes(storage_client: FileSystemStorageClient, tmp_path: Path,
                                                     make_image):
    # arrange
    data = make_image(100, 50)
    await _upload(storage_client, 'rust', data)
    service = _service(storage_client)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG))

    # assert
    assert result.value.data == data
    assert not (tmp_path / _cache_bucket).exists()


@pytest.mark.anyio
async def test_transform_decode_error(storage_client: FileSystemStorageClient, tmp_path: Path):
    # arrange
    await _upload(storage_client, 'rust', b'this is not an image')
    service = _service(storage_client)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG))

    # assert
    assert result.error.kind == ErrorKind.DECODE_ERROR
    assert not (tmp_path / _cache_bucket).exists()


@pytest.mark.anyio
async def test_transform_source_disappeared():
    # arrange
    storage_client_mock = create_autospec(StorageClient, instance=True)
    storage_client_mock.load_file.return_value = None
    scanner_mock = create_autospec(DerivedFileScanner, instance=True)
    scanner_mock.scan_file.return_value = ScanResult(status=ScanStatus.USE_SOURCE_FILE, source_file_stat=_source_file)
    service = _service(storage_client_mock, file_scanner=scanner_mock)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.PNG))

    # assert
    assert result.error.kind == ErrorKind.NOT_FOUND


@pytest.mark.anyio
async def test_transform_falls_back_when_cached_file_expired(make_image):
    # arrange
    data = make_image(100, 50)

    async def load_file(bucket: str, file_name: str):
        return BytesIO(data) if bucket == _uploads_bucket else None

    storage_client_mock = create_autospec(StorageClient, instance=True)
    storage_client_mock.load_file.side_effect = load_file
    scanner_mock = create_autospec(DerivedFileScanner, instance=True)
    scanner_mock.scan_file.return_value = ScanResult(status=ScanStatus.FILE_FOUND, source_file_stat=_source_file,
                                                     cache_key='rust/valid/key')
    service = _service(storage_client_mock, file_scanner=scanner_mock)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.WEBP, width=20))

    # assert
    assert _size(result.value.data) == (20, 10)
    storage_client_mock.put_file.assert_called_once()


@pytest.mark.anyio
async def test_transform_ignores_cache_write_failure(make_image):
    # arrange
    storage_client_mock = create_autospec(StorageClient, instance=True)
    storage_client_mock.load_file.return_value = BytesIO(make_image(100, 50))
    storage_client_mock.put_file.side_effect = OSError('disk is full')
    scanner_mock = create_autospec(DerivedFileScanner, instance=True)
    scanner_mock.scan_file.return_value = ScanResult(status=ScanStatus.CREATE_NEW, source_file_stat=_source_file,
                                                     cache_key='rust/valid/key')
    service = _service(storage_client_mock, file_scanner=scanner_mock)

    # act
    result = await service.transform(TransformDescriptor(file_name='rust', image_format=ImageFormat.WEBP, width=20))

    # assert
    assert result.ok
    assert _size(result.value.data) == (20, 10)


@pytest.mark.anyio
async def test_concurrent_transforms_do_not_interfere(storage_client: FileSystemStorageClient, make_image):
    # arrange
    sizes = {f'image{i}': (30 + 7 * i, 20 + 3 * i) for i in range(6)}
    for file_name, size in sizes.items():
        await _upload(storage_client, file_name, make_image(*size, seed=len(file_name) + size[0]))

    requests = [TransformDescriptor(file_name=file_name, image_format=image_format, width=w, height=h,
                                    stretch=True, sampling=SamplingMethod.CATMULL_ROM)
                for file_name in sizes
                for image_format, w, h in [(ImageFormat.PNG, 11, 13), (ImageFormat.WEBP, 17, 5)]]
    sequential = {r: (await _service(storage_client, cache_bucket=None).transform(r)).value.data for r in requests}
    concurrent = {}
    service = _service(storage_client)

    async def run(descriptor: TransformDescriptor):
        concurrent[descriptor] = (await service.transform(descriptor)).value.data

    # act
    async with anyio.create_task_group() as tg:
        for request in requests * 2:
            tg.start_soon(run, request)

    # assert
    assert concurrent == sequential
    assert all(_size(concurrent[r]) == (r.width, r.height) for r in requests)
