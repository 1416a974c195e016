from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import ClientError

EXHIBITOR_DOCUMENTS_BUCKET = "exhibitor-documents"
EVENT_IMAGES_BUCKET = "event-images"
BUCKETS = (EXHIBITOR_DOCUMENTS_BUCKET, EVENT_IMAGES_BUCKET)

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class StorageError(RuntimeError):
    pass


class UploadRejected(ValueError):
    """File failed the size/type pre-check; nothing was uploaded."""


def validate_upload(
    *, size: int, content_type: str | None, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> None:
    if size <= 0:
        raise UploadRejected("The selected file is empty.")
    if size > max_bytes:
        raise UploadRejected(f"File size must be {max_bytes // (1024 * 1024)}MB or less.")
    if (content_type or "").split(";")[0].strip().lower() not in ALLOWED_IMAGE_TYPES:
        raise UploadRejected("Please choose an image file (JPG, PNG, GIF, WebP).")


def file_extension(filename: str, default: str = "bin") -> str:
    base = (filename or "").rsplit("/", 1)[-1]
    if "." not in base:
        return default
    ext = base.rsplit(".", 1)[-1].lower()
    return "".join(ch for ch in ext if ch.isalnum()) or default


def _clean_path(path: str) -> str:
    p = posixpath.normpath("/" + (path or "").replace("\\", "/")).lstrip("/")
    if not p or p == ".":
        raise StorageError("Empty storage path.")
    return p


class Storage:
    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str | None = None) -> str:
        """Store ``data`` and return its path. Existing objects are never overwritten."""
        raise NotImplementedError

    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    def remove(self, bucket: str, path: str) -> bool:
        raise NotImplementedError

    def open(self, bucket: str, path: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, bucket: str, path: str) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    public_base_url: str = "/files"

    def _path(self, bucket: str, key: str) -> Path:
        return self.root / _clean_path(bucket) / _clean_path(key)

    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str | None = None) -> str:
        p = self._path(bucket, path)
        if p.exists():
            raise StorageError(f"The resource already exists: {bucket}/{path}")
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        return _clean_path(path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{_clean_path(bucket)}/{_clean_path(path)}"

    def remove(self, bucket: str, path: str) -> bool:
        p = self._path(bucket, path)
        if not p.exists():
            return False
        p.unlink()
        return True

    def open(self, bucket: str, path: str) -> BinaryIO:
        return self._path(bucket, path).open("rb")

    def exists(self, bucket: str, path: str) -> bool:
        return self._path(bucket, path).exists()


@dataclass(frozen=True)
class S3Storage(Storage):
    """One physical bucket; logical buckets become key prefixes."""

    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def _client(self):
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def _key(self, bucket: str, path: str) -> str:
        return f"{_clean_path(bucket)}/{_clean_path(path)}"

    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str | None = None) -> str:
        if self.exists(bucket, path):
            raise StorageError(f"The resource already exists: {bucket}/{path}")
        extra: dict[str, object] = {"CacheControl": "max-age=3600", "ACL": "public-read"}
        if content_type:
            extra["ContentType"] = content_type
        self._client().put_object(Bucket=self.bucket, Key=self._key(bucket, path), Body=data, **extra)
        return _clean_path(path)

    def public_url(self, bucket: str, path: str) -> str:
        base = self.public_base_url.rstrip("/") or f"https://{self.bucket}.{self.endpoint}"
        return f"{base}/{self._key(bucket, path)}"

    def remove(self, bucket: str, path: str) -> bool:
        self._client().delete_object(Bucket=self.bucket, Key=self._key(bucket, path))
        return True

    def open(self, bucket: str, path: str) -> BinaryIO:
        obj = self._client().get_object(Bucket=self.bucket, Key=self._key(bucket, path))
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, bucket: str, path: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=self._key(bucket, path))
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Could not check {bucket}/{path}: {e}") from e


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
            public_base_url=(config.get("STORAGE_PUBLIC_BASE_URL") or "").strip(),
        )
    # default local
    root = Path(config.get("STORAGE_ROOT") or os.path.join(os.getcwd(), "storage"))
    return LocalStorage(root=root, public_base_url=(config.get("STORAGE_PUBLIC_BASE_URL") or "/files").strip())


def upload_public_file(
    storage: Storage,
    bucket: str,
    path: str,
    data: bytes,
    *,
    content_type: str | None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> str:
    """Pre-check, upload and return the public URL."""
    validate_upload(size=len(data), content_type=content_type, max_bytes=max_bytes)
    stored = storage.upload(bucket, path, data, content_type=content_type)
    return storage.public_url(bucket, stored)
