from __future__ import annotations

import logging
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from werkzeug.utils import secure_filename

from app.catalog.errors import StorageFault, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})
ALLOWED_IMAGE_MIMETYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024
URL_PREFIX = "/uploads/"


class StorageError(StorageFault):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove the object. Missing keys are not an error."""
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        p = (self.root / safe_key).resolve()
        if not p.is_relative_to(self.root.resolve()):
            raise StorageError(f"Storage key escapes root: {key!r}")
        return p

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        return p.open("rb")

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        obj = self._client().get_object(Bucket=self.bucket, Key=key)
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def delete(self, key: str) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        # delete_object succeeds for missing keys.
        try:
            self._client().delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    root = (config.get("STORAGE_ROOT") or "").strip()
    return LocalStorage(root=Path(root) if root else Path(os.getcwd()) / "storage")


def key_to_url(key: str) -> str:
    return URL_PREFIX + key.lstrip("/")


def url_to_key(url: str) -> str:
    u = (url or "").strip()
    if u.startswith(URL_PREFIX):
        return u[len(URL_PREFIX):]
    return u.lstrip("/")


def validate_image(filename: str, content_type: str | None, size: int, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> str:
    """Returns the lower-cased extension; raises ValidationError on bad type or size."""
    ext = Path(filename or "").suffix.lower().lstrip(".")
    mimetype = (content_type or "").split(";")[0].strip().lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS or mimetype not in ALLOWED_IMAGE_MIMETYPES:
        raise ValidationError("Only .jpg, .jpeg, and .png files are allowed", field="images", filename=filename)
    if size <= 0:
        raise ValidationError("Uploaded file is empty.", field="images", filename=filename)
    if size > max_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.", field="images", filename=filename
        )
    return ext


def build_image_key(filename: str) -> str:
    """Unique key under materials/: millisecond timestamp + random suffix + original extension."""
    ext = Path(secure_filename(filename) or "image").suffix.lower()
    return f"materials/{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext}"


def store_image(
    storage: Storage,
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
    *,
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
) -> str:
    """Validate and write an image; returns the relative URL recorded on the material."""
    validate_image(filename, content_type, len(file_bytes), max_bytes=max_bytes)
    key = build_image_key(filename)
    storage.put_bytes(key, file_bytes, content_type=content_type)
    return key_to_url(key)


def remove_image(storage: Storage, url: str) -> None:
    """Idempotent: a missing file is not an error."""
    storage.delete(url_to_key(url))
