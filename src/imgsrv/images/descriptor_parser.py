import re
from collections.abc import Mapping

from imgsrv.errors import ErrorKind, Result
from imgsrv.images.models import TransformDescriptor
from imgsrv.models import ImageFormat, SamplingMethod

MAX_FILE_NAME_LENGTH = 200

_file_name_pattern = re.compile(r'[A-Za-z0-9][A-Za-z0-9._-]*')
_dimension_pattern = re.compile(r'[0-9]+')
_booleans: dict[str, bool] = {'true': True, 'false': False}


def is_valid_file_name(file_name: str) -> bool:
    return len(file_name) <= MAX_FILE_NAME_LENGTH and _file_name_pattern.fullmatch(file_name) is not None


def _parse_dimension(name: str, value: str | None, max_dimension: int | None) -> Result[int | None]:
    if value is None:
        return Result.success(None)

    if not _dimension_pattern.fullmatch(value) or int(value) == 0:
        return Result.failure(ErrorKind.INVALID_DIMENSION, f"'{name}' must be a positive integer, got '{value}'")

    dimension = int(value)
    if max_dimension and dimension > max_dimension:
        return Result.failure(ErrorKind.INVALID_DIMENSION, f"'{name}' must not exceed {max_dimension}")

    return Result.success(dimension)


def parse_descriptor(file_name: str, query: Mapping[str, str],
                     max_dimension: int | None = None) -> Result[TransformDescriptor]:
    """
    Parses a requested file name and its query string into a :class:`TransformDescriptor`
    :param file_name: Requested file, ``{name}.{extension}``
    :param query: Query parameters: ``w``, ``h``, ``stretch`` and ``sampling``
    :param max_dimension: Largest accepted width or height, `None` for no limit
    :return: Descriptor or a parse error
    """
    stem, dot, extension = file_name.rpartition('.')
    image_format = ImageFormat.from_extension(extension) if dot else None
    if not image_format:
        return Result.failure(ErrorKind.UNSUPPORTED_FORMAT,
                              f"Unsupported file format '{extension if dot else ''}', use png, jpeg or webp")

    if not is_valid_file_name(stem):
        return Result.failure(ErrorKind.INVALID_FILE_NAME, f"Invalid file name '{stem}'")

    width = _parse_dimension('w', query.get('w', None), max_dimension)
    if width.error:
        return Result(error=width.error)

    height = _parse_dimension('h', query.get('h', None), max_dimension)
    if height.error:
        return Result(error=height.error)

    stretch = False
    raw_stretch = query.get('stretch', None)
    if raw_stretch is not None:
        if raw_stretch.lower() not in _booleans:
            return Result.failure(ErrorKind.INVALID_BOOLEAN,
                                  f"'stretch' must be true or false, got '{raw_stretch}'")
        stretch = _booleans[raw_stretch.lower()]

    sampling = SamplingMethod.NEAREST
    raw_sampling = query.get('sampling', None)
    if raw_sampling is not None:
        parsed_sampling = SamplingMethod.from_name(raw_sampling)
        if not parsed_sampling:
            options = ", ".join(m.value for m in SamplingMethod)
            return Result.failure(ErrorKind.INVALID_SAMPLING_METHOD,
                                  f"Unknown sampling method '{raw_sampling}', use one of: {options}")
        sampling = parsed_sampling

    return Result.success(TransformDescriptor(file_name=stem, image_format=image_format,
                                              width=width.value, height=height.value,
                                              stretch=stretch, sampling=sampling))
