import enum
import typing
from dataclasses import dataclass

T = typing.TypeVar("T")


class ErrorKind(enum.StrEnum):
    # request parsing
    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_DIMENSION = "invalid_dimension"
    INVALID_BOOLEAN = "invalid_boolean"
    INVALID_SAMPLING_METHOD = "invalid_sampling_method"
    INVALID_FILE_NAME = "invalid_file_name"

    # serving
    NOT_FOUND = "not_found"
    DECODE_ERROR = "decode_error"
    ENCODE_ERROR = "encode_error"

    # uploading
    NO_FILE_PART = "no_file_part"
    EMPTY_FILE = "empty_file"
    FILE_EXISTS = "file_exists"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    STORAGE_WRITE_FAILURE = "storage_write_failure"


@dataclass(frozen=True, slots=True)
class ServiceError:
    kind: ErrorKind
    """ Error category, decides the response status """
    message: str
    """ Human-readable reason """


@dataclass(frozen=True, slots=True)
class Result(typing.Generic[T]):
    """
    Outcome of a fallible operation: either ``value`` or ``error`` is set.
    """
    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(value=value)

    @staticmethod
    def failure(kind: ErrorKind, message: str) -> "Result[typing.Any]":
        return Result(error=ServiceError(kind=kind, message=message))
