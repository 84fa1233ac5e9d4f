"""
Geometric resampling of :class:`PixelGrid` objects.

Every method except nearest is a separable convolution: the grid is filtered along rows, then along columns.
When shrinking, the kernel is widened by the scale factor so that it also acts as a low-pass filter.
"""
import typing
from dataclasses import dataclass

import numpy as np

from imgsrv.errors import ErrorKind, Result
from imgsrv.images.models import PixelGrid
from imgsrv.models import SamplingMethod

_Kernel = typing.Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True, slots=True)
class _Filter:
    support: float
    kernel: _Kernel


def _triangle(x: np.ndarray) -> np.ndarray:
    return np.maximum(0.0, 1.0 - np.abs(x))


def _bc_cubic(b: float, c: float) -> _Kernel:
    """ Mitchell-Netravali cubic family """

    def kernel(x: np.ndarray) -> np.ndarray:
        a = np.abs(x)
        a2 = a * a
        a3 = a2 * a
        near = ((12 - 9 * b - 6 * c) * a3 + (-18 + 12 * b + 6 * c) * a2 + (6 - 2 * b)) / 6
        far = ((-b - 6 * c) * a3 + (6 * b + 30 * c) * a2 + (-12 * b - 48 * c) * a + (8 * b + 24 * c)) / 6
        return np.where(a < 1.0, near, np.where(a < 2.0, far, 0.0))

    return kernel


def _gaussian(sigma: float) -> _Kernel:
    def kernel(x: np.ndarray) -> np.ndarray:
        return np.exp(-(x * x) / (2 * sigma * sigma)) / np.sqrt(2 * np.pi * sigma * sigma)

    return kernel


def _lanczos(lobes: int) -> _Kernel:
    def kernel(x: np.ndarray) -> np.ndarray:
        return np.where(np.abs(x) < lobes, np.sinc(x) * np.sinc(x / lobes), 0.0)

    return kernel


_filters: dict[SamplingMethod, _Filter] = {
    SamplingMethod.TRIANGLE: _Filter(support=1.0, kernel=_triangle),
    SamplingMethod.CATMULL_ROM: _Filter(support=2.0, kernel=_bc_cubic(0.0, 0.5)),
    SamplingMethod.GAUSSIAN: _Filter(support=3.0, kernel=_gaussian(0.5)),
    SamplingMethod.LANCZOS3: _Filter(support=3.0, kernel=_lanczos(3))
}


def _round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def resolve_dimensions(src_width: int, src_height: int,
                       width: int | None, height: int | None,
                       stretch: bool = False) -> tuple[int, int]:
    """
    Computes the output size of a resize request
    :param src_width: Source width
    :param src_height: Source height
    :param width: Requested width, `None` to derive it from the height
    :param height: Requested height, `None` to derive it from the width
    :param stretch: Set True to use the requested box as is, otherwise the result fits inside the box
    :return: Output width and height, both at least 1px
    """
    assert src_width > 0 and src_height > 0, "source size must be positive"
    assert width is None or width > 0, "width must be greater than 0"
    assert height is None or height > 0, "height must be greater than 0"

    if width is None and height is None:
        return src_width, src_height

    if height is None:
        return width, max(1, _round_half_up(src_height * width, src_width))

    if width is None:
        return max(1, _round_half_up(src_width * height, src_height)), height

    if stretch:
        return width, height

    # the tighter ratio wins; integer rounding can't push the other side over the box
    if width * src_height <= height * src_width:
        return width, max(1, _round_half_up(src_height * width, src_width))

    return max(1, _round_half_up(src_width * height, src_height)), height


def _nearest_indices(src_size: int, dst_size: int) -> np.ndarray:
    positions = np.arange(dst_size, dtype=np.int64)
    return np.minimum(((2 * positions + 1) * src_size) // (2 * dst_size), src_size - 1)


def _axis_weights(src_size: int, dst_size: int, flt: _Filter) -> tuple[np.ndarray, np.ndarray]:
    ratio = src_size / dst_size
    scale = max(ratio, 1.0)
    support = flt.support * scale

    centers = (np.arange(dst_size) + 0.5) * ratio
    first = np.floor(centers - support).astype(np.int64)
    taps = int(np.ceil(2 * support)) + 1
    indices = first[:, None] + np.arange(taps, dtype=np.int64)[None, :]

    weights = flt.kernel((indices + 0.5 - centers[:, None]) / scale)
    weights = np.where((indices >= 0) & (indices < src_size), weights, 0.0)
    totals = weights.sum(axis=1, keepdims=True)
    weights = weights / np.where(totals == 0.0, 1.0, totals)

    return np.clip(indices, 0, src_size - 1), weights.astype(np.float32)


def _convolve_axis(data: np.ndarray, axis: int, indices: np.ndarray, weights: np.ndarray) -> np.ndarray:
    shape = [1, 1, 1]
    shape[axis] = indices.shape[0]

    result: np.ndarray | None = None
    for tap in range(indices.shape[1]):
        weighted = np.take(data, indices[:, tap], axis=axis) * weights[:, tap].reshape(shape)
        result = weighted if result is None else result + weighted

    assert result is not None, "filter has no taps"
    return result


def _sample(pixels: np.ndarray, width: int, height: int, method: SamplingMethod) -> np.ndarray:
    src_height, src_width = pixels.shape[:2]
    if method == SamplingMethod.NEAREST:
        rows = _nearest_indices(src_height, height)
        columns = _nearest_indices(src_width, width)
        return pixels[rows[:, None], columns[None, :]]

    flt = _filters[method]
    data = pixels.astype(np.float32)
    data = _convolve_axis(data, 1, *_axis_weights(src_width, width, flt))
    data = _convolve_axis(data, 0, *_axis_weights(src_height, height, flt))
    return np.clip(np.rint(data), 0, 255).astype(np.uint8)


def resize(grid: PixelGrid, width: int | None, height: int | None,
           stretch: bool = False,
           method: SamplingMethod = SamplingMethod.NEAREST) -> Result[PixelGrid]:
    """
    Resizes the grid
    :param grid: Source pixels
    :param width: Target width, `None` to keep the aspect ratio
    :param height: Target height, `None` to keep the aspect ratio
    :param stretch: Set True to produce exactly width x height
    :param method: Sampling method, it doesn't affect the output size
    :return: New grid or ``invalid_dimension``
    """
    if width is None and height is None:
        return Result.failure(ErrorKind.INVALID_DIMENSION, "Target width or height is required")

    if (width is not None and width <= 0) or (height is not None and height <= 0):
        return Result.failure(ErrorKind.INVALID_DIMENSION, f"Target size {width}x{height} must be positive")

    new_width, new_height = resolve_dimensions(grid.width, grid.height, width, height, stretch)
    pixels = _sample(grid.pixels, new_width, new_height, method)
    return Result.success(PixelGrid(width=new_width, height=new_height, pixels=pixels))
