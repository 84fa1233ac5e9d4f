from dataclasses import dataclass

from imgsrv import __version__
from imgsrv.models import BucketsInfo, StorageBackend


@dataclass(frozen=True, slots=True)
class HealthReport:
    status: BucketsInfo
    """ Buckets checked at startup """
    storage: StorageBackend
    """ Storage backend in use """
    version: str = __version__

    @property
    def healthy(self) -> bool:
        return not self.status.error


class HealthCheckService:
    _storage: StorageBackend
    _buckets_info: BucketsInfo | None = None

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    def set_buckets_info(self, buckets_info: BucketsInfo):
        assert buckets_info is not None, "buckets_info is required"
        assert self._buckets_info is None, "buckets were checked already"

        self._buckets_info = buckets_info

    def report(self) -> HealthReport:
        assert self._buckets_info, "set_buckets_info() was not called"
        return HealthReport(status=self._buckets_info, storage=self._storage)
