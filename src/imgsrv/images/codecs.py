"""
PNG, JPEG and WebP codecs.

Decoding identifies the format from magic bytes only, a file name or a stored content type is never trusted.
Every function here is pure: the output depends on the arguments alone.
"""
from dataclasses import dataclass
from io import BytesIO

import numpy as np
from PIL import Image, ImageColor

from imgsrv.errors import ErrorKind, Result
from imgsrv.images.models import PixelGrid
from imgsrv.models import ImageFormat

_PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
_JPEG_SIGNATURE = b'\xff\xd8\xff'

_ENCODABLE_CHANNELS = (3, 4)


@dataclass(frozen=True, slots=True)
class CodecOptions:
    jpeg_quality: int = 90
    """ JPEG quality, 1..100 """
    jpeg_background: str = "#ffffff"
    """ Colour transparent pixels are composited onto, JPEG has no alpha channel """
    webp_lossless: bool = True
    """ Use lossless WebP compression """
    webp_quality: int = 80
    """ WebP quality when lossy """
    png_optimize: bool = False
    """ Spend extra time to find the smallest PNG encoding """


def sniff_format(data: bytes) -> ImageFormat | None:
    if data.startswith(_PNG_SIGNATURE):
        return ImageFormat.PNG
    if data.startswith(_JPEG_SIGNATURE):
        return ImageFormat.JPEG
    if len(data) >= 12 and data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return ImageFormat.WEBP
    return None


def _to_rgba(image: Image.Image) -> Image.Image:
    if image.mode == 'RGBA':
        return image
    if image.mode == 'I' or image.mode.startswith('I;16'):
        # 16-bit grey, Pillow clips it instead of scaling when converting to 8 bits
        levels = np.clip(np.asarray(image), 0, 0xFFFF).astype(np.uint32) >> 8
        image = Image.fromarray(levels.astype(np.uint8))
    if image.mode == 'CMYK':
        image = image.convert('RGB')
    return image.convert('RGBA')


def decode(data: bytes, max_pixels: int | None = None) -> Result[PixelGrid]:
    """
    Decodes an image into an RGBA :class:`PixelGrid`
    :param data: Encoded image
    :param max_pixels: Largest accepted width * height, `None` to accept any size
    :return: Decoded grid or ``decode_error``
    """
    image_format = sniff_format(data)
    if not image_format:
        return Result.failure(ErrorKind.DECODE_ERROR, "Unrecognized image data, expected png, jpeg or webp")

    try:
        with Image.open(BytesIO(data), formats=[image_format.pil_format]) as im:
            width, height = im.size
            if max_pixels and width * height > max_pixels:
                return Result.failure(ErrorKind.DECODE_ERROR,
                                      f"Image is too large: {width}x{height} exceeds {max_pixels} pixels")

            im.load()
            rgba = _to_rgba(im)
            pixels = np.array(rgba, dtype=np.uint8)
    except Exception as e:
        # Pillow reports broken data with a mix of OSError, SyntaxError, EOFError and struct errors
        return Result.failure(ErrorKind.DECODE_ERROR, f"Failed to decode {image_format} data: {e}")

    return Result.success(PixelGrid(width=pixels.shape[1], height=pixels.shape[0], pixels=pixels))


def _flatten_alpha(image: Image.Image, background: str) -> Image.Image:
    if image.mode != 'RGBA':
        return image

    result = Image.new('RGB', image.size, ImageColor.getrgb(background))
    result.paste(image, mask=image.getchannel('A'))
    return result


def encode(grid: PixelGrid, image_format: ImageFormat, options: CodecOptions | None = None) -> Result[bytes]:
    """
    Encodes the grid into the given format
    :param grid: Pixels to encode, RGB or RGBA
    :param image_format: Output format
    :param options: Encoder settings, defaults are used if `None`
    :return: Encoded bytes or ``encode_error``
    """
    opts = options or CodecOptions()
    if grid.channels not in _ENCODABLE_CHANNELS:
        return Result.failure(ErrorKind.ENCODE_ERROR, f"Can't encode an image with {grid.channels} channel(s)")

    result = BytesIO()
    try:
        image = Image.fromarray(np.ascontiguousarray(grid.pixels))
        if image_format == ImageFormat.JPEG:
            image = _flatten_alpha(image, opts.jpeg_background)
            image.save(result, format=image_format.pil_format, quality=opts.jpeg_quality)
        elif image_format == ImageFormat.WEBP:
            if opts.webp_lossless:
                image.save(result, format=image_format.pil_format, lossless=True)
            else:
                image.save(result, format=image_format.pil_format, quality=opts.webp_quality)
        elif image_format == ImageFormat.PNG:
            image.save(result, format=image_format.pil_format, optimize=opts.png_optimize)
        else:
            return Result.failure(ErrorKind.ENCODE_ERROR, f"No encoder for {image_format}")
    except (OSError, ValueError, KeyError) as e:
        return Result.failure(ErrorKind.ENCODE_ERROR, f"Failed to encode {image_format}: {e}")

    return Result.success(result.getvalue())
