from dataclasses import dataclass, field

import numpy as np

from imgsrv.models import ImageFormat, SamplingMethod


@dataclass(frozen=True, slots=True, eq=False)
class PixelGrid:
    """ Decoded image: ``pixels`` is a row-major ``(height, width, channels)`` array of 8-bit samples """
    width: int
    height: int
    pixels: np.ndarray = field(repr=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Grid size must be positive, got {self.width}x{self.height}")
        if self.pixels.dtype != np.uint8 or self.pixels.ndim != 3:
            raise ValueError(f"Expected a 3-dimensional uint8 array, got {self.pixels.ndim}d {self.pixels.dtype}")

        channels = self.pixels.shape[2]
        if not 1 <= channels <= 4 or self.pixels.shape[:2] != (self.height, self.width):
            raise ValueError(f"Array shape {self.pixels.shape} doesn't match {self.width}x{self.height}")

    @property
    def channels(self) -> int:
        return self.pixels.shape[2]

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True, slots=True)
class TransformDescriptor:
    file_name: str
    """ Stored file name (extension-less stem) """
    image_format: ImageFormat
    """ Requested output format """
    width: int | None = None
    """ Requested width """
    height: int | None = None
    """ Requested height """
    stretch: bool = False
    """ Set True to ignore source aspect ratio """
    sampling: SamplingMethod = SamplingMethod.NEAREST
    """ Resampling kernel """

    @property
    def resize_requested(self) -> bool:
        return self.width is not None or self.height is not None

    def cache_key(self, source_etag: str) -> str:
        """ Storage key of the derived file, changes whenever the source file changes """
        w = self.width or "auto"
        h = self.height or "auto"
        stretch = "stretch" if self.stretch else "fit"
        return f"{self.file_name}/{source_etag}/{w}x{h}-{stretch}-{self.sampling}.{self.image_format}"


@dataclass(frozen=True, slots=True)
class ImageData:
    content_type: str
    data: bytes = field(repr=False)
    from_source: bool = False
    """ True when stored bytes were returned without re-encoding """
