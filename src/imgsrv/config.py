import typing

from PIL import ImageColor
from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator
from pydantic.dataclasses import dataclass
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, JsonConfigSettingsSource

from imgsrv.images.codecs import CodecOptions
from imgsrv.images.image_processor import ProcessingOptions
from imgsrv.models import StorageBackend, UploadNaming


@dataclass(frozen=True, slots=True)
class S3Settings:
    endpoint: str = "localhost:9000"
    """ host:port of the S3 (minio) server """
    access_key: str = "MINIO_AK"
    """ Access key """
    secret_key: str = "MINIO_SK"
    """ Secret key """
    region: str = "eu-west-1"
    """ Region, eu-west-1 by default """
    secure: bool = False
    """ Connect over https, False by default """
    cert_check: bool = True
    """ Validate the server certificate on https connections, True by default """

    @staticmethod
    def from_url(value: str) -> tuple["S3Settings", str | None]:
        """
        Parses a connection string ``http(s)://{access_key}:{secret_key}@{host}:{port}/{region}/{bucket}``
        :return: Settings and the bucket, `None` when the url has no bucket segment
        """
        url = HttpUrl(value)
        segments = [t for t in (url.path or "").split('/') if t]
        if not segments:
            raise ValueError(f"S3 connection string '{value}' doesn't contain a region")

        settings = S3Settings(endpoint=f"{url.host}:{url.port}", access_key=url.username or "",
                              secret_key=url.password or "", region=segments[0], secure=url.scheme == 'https')
        return settings, segments[1] if len(segments) > 1 else None


class CodecSettings(BaseModel):
    jpeg_quality: int = Field(default=90, ge=1, le=100)
    """ JPEG quality, 90 by default """

    jpeg_background: str = "#ffffff"
    """ Colour to put under transparent pixels when encoding JPEG, white by default """

    webp_lossless: bool = True
    """ Encode WebP without losses, True by default """

    webp_quality: int = Field(default=80, ge=1, le=100)
    """ WebP quality when webp_lossless is False, 80 by default """

    png_optimize: bool = False
    """ Search for the smallest PNG encoding, slow. False by default """

    # noinspection PyNestedDecorators
    @field_validator('jpeg_background')
    @classmethod
    def validate_background(cls, value: str) -> str:
        ImageColor.getrgb(value)
        return value


_uvicorn_defaults: dict[str, typing.Any] = {'host': '0.0.0.0', 'port': 8080, 'proxy_headers': True}


class AppSettings(BaseSettings):
    """ Application settings """

    storage: StorageBackend = StorageBackend.FS
    """ Storage backend: fs or s3. Default: fs """

    storage_dir: str = "uploads"
    """ Root directory of the fs storage backend """

    s3: S3Settings = S3Settings()
    """ S3 or minio connection parameters """

    uploads_bucket: str = "uploads"
    """ Bucket with uploaded source images """

    cache_enabled: bool = True
    """ Keep transformed images in cache_bucket, True by default """

    cache_bucket: str = "uploads-cache"
    """ Bucket with transformed images """

    cache_life_time_days: int = Field(default=30, ge=0)
    """ How many days transformed images live in the cache bucket. Zero means infinity """

    upload_naming: UploadNaming = UploadNaming.ORIGINAL
    """ How uploaded files are named: original file name or content hash. Default: original """

    max_upload_bytes: int = Field(default=20 * 1024 * 1024, gt=0)
    """ Largest accepted upload, 20MiB by default """

    max_dimension: int = Field(default=8192, gt=0)
    """ Largest width or height a client can request """

    max_image_pixels: int = Field(default=50_000_000, gt=0)
    """ Largest source image (width * height) to decode """

    worker_threads: int = Field(default=4, gt=0)
    """ How many images are processed at the same time """

    codecs: CodecSettings = CodecSettings()
    """ Encoder settings """

    log_level: str = 'info'
    """ Logging level. Options: critical, error, warning, info, debug, trace. Default: info """

    log_fmt: str = "{time} | {level}: {extra} {message}"
    """ Logging message format """

    log_file: str | None = "logs/log_{time}.log"
    """ Log file path, set empty to log to console only """

    uvicorn: dict[str, typing.Any] = Field(default_factory=dict)
    """ uvicorn specific settings """

    model_config = SettingsConfigDict(env_file=".env", nested_model_default_partial_update=True,
                                      env_nested_delimiter="__", extra='ignore', case_sensitive=False,
                                      json_file="config.json", enable_decoding=False)

    # noinspection PyNestedDecorators
    @model_validator(mode='before')
    @classmethod
    def apply_defaults(cls, data: typing.Any) -> typing.Any:
        if not isinstance(data, dict):
            return data

        values = dict(data)
        values['uvicorn'] = {**_uvicorn_defaults, **(values.get('uvicorn', None) or {})}

        s3 = values.get('s3', None)
        if isinstance(s3, str):
            values['s3'], bucket = S3Settings.from_url(s3)
            if bucket:
                values.setdefault('uploads_bucket', bucket)

        return values

    @classmethod
    def settings_customise_sources(cls, settings_cls: type[BaseSettings],
                                   init_settings: PydanticBaseSettingsSource,
                                   env_settings: PydanticBaseSettingsSource,
                                   dotenv_settings: PydanticBaseSettingsSource,
                                   file_secret_settings: PydanticBaseSettingsSource
                                   ) -> tuple[PydanticBaseSettingsSource, ...]:
        # environment wins over config.json, config.json wins over .env
        json_settings = JsonConfigSettingsSource(settings_cls)
        return init_settings, env_settings, json_settings, dotenv_settings, file_secret_settings

    @property
    def processing_options(self) -> ProcessingOptions:
        codec_options = CodecOptions(jpeg_quality=self.codecs.jpeg_quality,
                                     jpeg_background=self.codecs.jpeg_background,
                                     webp_lossless=self.codecs.webp_lossless,
                                     webp_quality=self.codecs.webp_quality,
                                     png_optimize=self.codecs.png_optimize)
        return ProcessingOptions(codecs=codec_options, max_image_pixels=self.max_image_pixels,
                                 max_dimension=self.max_dimension)


_app_settings: AppSettings | None = None


def get_app_settings() -> AppSettings:
    global _app_settings
    if not _app_settings:
        _app_settings = AppSettings()
    return _app_settings
