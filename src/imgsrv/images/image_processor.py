import functools
from dataclasses import dataclass, field

import anyio.to_thread
from anyio import CapacityLimiter

from imgsrv.errors import ErrorKind, Result
from imgsrv.images import codecs, resampler
from imgsrv.images.codecs import CodecOptions
from imgsrv.images.models import ImageData, TransformDescriptor


@dataclass(frozen=True, slots=True)
class ProcessingOptions:
    codecs: CodecOptions = field(default_factory=CodecOptions)
    """ Encoder settings """
    max_image_pixels: int | None = None
    """ Largest source image to decode, in pixels """
    max_dimension: int | None = None
    """ Largest output width or height, applies to the computed side too """


def process_image(data: bytes, descriptor: TransformDescriptor,
                  options: ProcessingOptions | None = None) -> Result[ImageData]:
    assert data is not None, "data cannot be None"
    assert descriptor is not None, "descriptor cannot be None"

    opts = options or ProcessingOptions()
    decoded = codecs.decode(data, opts.max_image_pixels)
    if decoded.error:
        return Result(error=decoded.error)

    grid = decoded.value
    assert grid, "decoded grid is missing"

    target_size = resampler.resolve_dimensions(grid.width, grid.height, descriptor.width, descriptor.height,
                                               descriptor.stretch)
    if descriptor.resize_requested and opts.max_dimension and max(target_size) > opts.max_dimension:
        return Result.failure(ErrorKind.INVALID_DIMENSION,
                              f"Resized image would be {target_size[0]}x{target_size[1]}, "
                              f"the largest allowed side is {opts.max_dimension}")
    resized = target_size != grid.size
    if resized:
        resize_result = resampler.resize(grid, descriptor.width, descriptor.height, descriptor.stretch,
                                         descriptor.sampling)
        if resize_result.error:
            return Result(error=resize_result.error)
        grid = resize_result.value
        assert grid, "resized grid is missing"

    content_type = descriptor.image_format.mime_type
    if not resized and codecs.sniff_format(data) == descriptor.image_format:
        return Result.success(ImageData(content_type=content_type, data=data, from_source=True))

    encoded = codecs.encode(grid, descriptor.image_format, opts.codecs)
    if encoded.error:
        return Result(error=encoded.error)

    assert encoded.value is not None, "encoded data is missing"
    return Result.success(ImageData(content_type=content_type, data=encoded.value))


async def process_image_async(data: bytes, descriptor: TransformDescriptor,
                              options: ProcessingOptions | None = None,
                              limiter: CapacityLimiter | None = None) -> Result[ImageData]:
    func = functools.partial(process_image, data=data, descriptor=descriptor, options=options)
    return await anyio.to_thread.run_sync(func, limiter=limiter)
