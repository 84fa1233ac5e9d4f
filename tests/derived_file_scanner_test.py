from unittest.mock import create_autospec

import pytest

from imgsrv.images.derived_file_scanner import DerivedFileScannerImpl, ScanStatus
from imgsrv.images.models import TransformDescriptor
from imgsrv.images.storage_client import StorageClient, StorageFileItem
from imgsrv.models import ImageFormat

_descriptor = TransformDescriptor(file_name='rust', image_format=ImageFormat.WEBP, width=50)
_source_file = StorageFileItem(bucket='uploads', file_name='rust', size=1, content_type='image/png', etag='valid')
_expected_cache_key = 'rust/valid/50xauto-fit-nearest.webp'


def _storage_client_mock(files: dict[tuple[str, str], StorageFileItem]) -> StorageClient:
    def side_effect(bucket: str, file_name: str):
        return files.get((bucket, file_name), None)

    storage_client_mock = create_autospec(StorageClient, instance=True)
    storage_client_mock.get_file_stat.side_effect = side_effect
    return storage_client_mock


@pytest.mark.anyio
async def test_source_file_not_found():
    scanner = DerivedFileScannerImpl(_storage_client_mock({}), 'uploads', 'uploads-cache')

    result = await scanner.scan_file(_descriptor)

    assert result.status == ScanStatus.SOURCE_FILE_NOT_FOUND


@pytest.mark.anyio
async def test_use_source_file_when_cache_disabled():
    scanner = DerivedFileScannerImpl(_storage_client_mock({('uploads', 'rust'): _source_file}), 'uploads', None)

    result = await scanner.scan_file(_descriptor)

    assert result.status == ScanStatus.USE_SOURCE_FILE
    assert result.source_file_stat == _source_file
    assert result.cache_key is None


@pytest.mark.anyio
async def test_file_found():
    # arrange
    cached_file = StorageFileItem(bucket='uploads-cache', file_name=_expected_cache_key, size=1,
                                  content_type='image/webp', etag='cached')
    storage_client_mock = _storage_client_mock({('uploads', 'rust'): _source_file,
                                                ('uploads-cache', _expected_cache_key): cached_file})
    scanner = DerivedFileScannerImpl(storage_client_mock, 'uploads', 'uploads-cache')

    # act
    result = await scanner.scan_file(_descriptor)

    # assert
    assert result.status == ScanStatus.FILE_FOUND
    assert result.file_stat == cached_file
    assert result.cache_key == _expected_cache_key


@pytest.mark.anyio
async def test_create_new():
    scanner = DerivedFileScannerImpl(_storage_client_mock({('uploads', 'rust'): _source_file}),
                                     'uploads', 'uploads-cache')

    result = await scanner.scan_file(_descriptor)

    assert result.status == ScanStatus.CREATE_NEW
    assert result.cache_key == _expected_cache_key
    assert result.file_stat is None


@pytest.mark.anyio
async def test_cached_file_of_old_source_is_ignored():
    # arrange
    stale_key = 'rust/stale/50xauto-fit-nearest.webp'
    stale_file = StorageFileItem(bucket='uploads-cache', file_name=stale_key, size=1,
                                 content_type='image/webp', etag='cached')
    storage_client_mock = _storage_client_mock({('uploads', 'rust'): _source_file,
                                                ('uploads-cache', stale_key): stale_file})
    scanner = DerivedFileScannerImpl(storage_client_mock, 'uploads', 'uploads-cache')

    # act
    result = await scanner.scan_file(_descriptor)

    # assert
    assert result.status == ScanStatus.CREATE_NEW
