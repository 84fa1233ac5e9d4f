from fastapi import APIRouter, Request
from starlette import status
from starlette.responses import Response, JSONResponse

from imgsrv.errors import ErrorKind, ServiceError
from imgsrv.images.dependencies import AppSettingsDep, TransformServiceDep, UploadServiceDep
from imgsrv.images.descriptor_parser import parse_descriptor

images_router = APIRouter()

# room for boundaries and part headers on top of the file itself
_MULTIPART_OVERHEAD = 64 * 1024

_error_statuses: dict[ErrorKind, int] = {
    ErrorKind.UNSUPPORTED_FORMAT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_DIMENSION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_BOOLEAN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_SAMPLING_METHOD: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_FILE_NAME: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.DECODE_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.ENCODE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NO_FILE_PART: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EMPTY_FILE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FILE_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.PAYLOAD_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorKind.STORAGE_WRITE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR
}


def error_response(error: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=_error_statuses[error.kind],
                        content={"detail": error.message, "code": error.kind.value})


@images_router.get("/uploads/{file_name}")
async def get_image(file_name: str, request: Request,
                    app_settings: AppSettingsDep,
                    transform_service: TransformServiceDep) -> Response:
    descriptor = parse_descriptor(file_name, request.query_params, app_settings.max_dimension)
    if descriptor.error:
        return error_response(descriptor.error)

    assert descriptor.value, "descriptor is missing"
    result = await transform_service.transform(descriptor.value)
    if result.error:
        return error_response(result.error)

    assert result.value, "image data is missing"
    return Response(content=result.value.data, media_type=result.value.content_type)


@images_router.post("/upload")
async def upload_image(request: Request, app_settings: AppSettingsDep, upload_service: UploadServiceDep) -> Response:
    declared_length = request.headers.get("content-length", "")
    if declared_length.isdigit() and int(declared_length) > app_settings.max_upload_bytes + _MULTIPART_OVERHEAD:
        return error_response(ServiceError(kind=ErrorKind.PAYLOAD_TOO_LARGE,
                                           message=f"File is larger than {app_settings.max_upload_bytes} bytes"))

    async with request.form() as form:
        result = await upload_service.ingest(form)

    if result.error:
        return error_response(result.error)

    assert result.value, "stored file is missing"
    return JSONResponse(status_code=status.HTTP_201_CREATED,
                        content={"filename": result.value.file_name, "size": result.value.size,
                                 "content_type": result.value.content_type})
