import enum
from dataclasses import dataclass


class ImageFormat(enum.StrEnum):
    PNG = enum.auto()
    JPEG = enum.auto()
    WEBP = enum.auto()

    @property
    def mime_type(self) -> str:
        return _mime_types[self]

    @property
    def pil_format(self) -> str:
        """ Format name as Pillow knows it """
        return self.name

    @classmethod
    def from_extension(cls, extension: str) -> "ImageFormat | None":
        return _extensions.get(extension.lower(), None)


_mime_types: dict[ImageFormat, str] = {
    ImageFormat.PNG: 'image/png',
    ImageFormat.JPEG: 'image/jpeg',
    ImageFormat.WEBP: 'image/webp'
}

_extensions: dict[str, ImageFormat] = {
    'png': ImageFormat.PNG,
    'jpeg': ImageFormat.JPEG,
    'jpg': ImageFormat.JPEG,
    'webp': ImageFormat.WEBP
}


class SamplingMethod(enum.StrEnum):
    NEAREST = "nearest"
    TRIANGLE = "triangle"
    CATMULL_ROM = "catmullrom"
    GAUSSIAN = "gaussian"
    LANCZOS3 = "lanczos3"

    @classmethod
    def from_name(cls, name: str) -> "SamplingMethod | None":
        try:
            return cls(name.lower())
        except ValueError:
            return None


class StorageBackend(enum.StrEnum):
    FS = "fs"
    S3 = "s3"


class UploadNaming(enum.StrEnum):
    ORIGINAL = "original"
    """ Client file name without its extension """
    HASH = "hash"
    """ SHA-256 of the uploaded content """


class BucketStatus(str, enum.Enum):
    created = "created"
    exists = "exists"
    error = "error"


@dataclass(slots=True)
class BucketsInfo:
    buckets: dict[str, BucketStatus]
    error: bool
