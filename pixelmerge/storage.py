from __future__ import annotations

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pixelmerge.config import settings
from pixelmerge.errors import UpstreamError

logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"
# Render keys are content addressed, so a stored object never changes.
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class RenderStorageConfigurationError(RuntimeError):
    pass


class RenderStorage:
    """Uploads rendered PNGs to S3-compatible storage and returns their public URL."""

    def __init__(self) -> None:
        if not settings.MEDIA_STORAGE_BUCKET:
            raise RenderStorageConfigurationError("MEDIA_STORAGE_BUCKET is required")
        if not settings.MEDIA_STORAGE_ENDPOINT:
            raise RenderStorageConfigurationError("MEDIA_STORAGE_ENDPOINT is required")
        if not settings.MEDIA_STORAGE_ACCESS_KEY or not settings.MEDIA_STORAGE_SECRET_KEY:
            raise RenderStorageConfigurationError(
                "MEDIA_STORAGE_ACCESS_KEY and MEDIA_STORAGE_SECRET_KEY are required"
            )
        if not settings.media_public_base_url:
            raise RenderStorageConfigurationError("MEDIA_PUBLIC_BASE_URL is required")

        addressing_style = "path" if settings.MEDIA_STORAGE_FORCE_PATH_STYLE else "auto"
        self.bucket = settings.MEDIA_STORAGE_BUCKET
        self.prefix = (settings.MEDIA_STORAGE_PREFIX or "").strip("/")
        self.public_base_url = settings.media_public_base_url

        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=settings.MEDIA_STORAGE_ENDPOINT,
            aws_access_key_id=settings.MEDIA_STORAGE_ACCESS_KEY,
            aws_secret_access_key=settings.MEDIA_STORAGE_SECRET_KEY,
            region_name=settings.MEDIA_STORAGE_REGION or "us-east-1",
            use_ssl=bool(settings.MEDIA_STORAGE_USE_SSL),
            config=Config(
                s3={"addressing_style": addressing_style},
                signature_version="s3v4",
            ),
        )

    def object_key(self, storage_key: str) -> str:
        parts = [p for p in [self.prefix, storage_key.lstrip("/")] if p]
        return "/".join(parts)

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{object_key}"

    def upload_png(self, data: bytes, storage_key: str) -> str:
        key = self.object_key(storage_key)
        try:
            # put_object overwrites, so a racing duplicate render just replaces identical bytes.
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=PNG_CONTENT_TYPE,
                CacheControl=IMMUTABLE_CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Upload of {key} failed: {exc}") from exc
        logger.info("Uploaded render bucket=%s key=%s bytes=%d", self.bucket, key, len(data))
        return self.public_url(key)
