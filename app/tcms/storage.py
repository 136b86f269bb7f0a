"""
Blob storage for uploaded files (CVs, expense receipts).

Objects are addressed by a slash-separated key. Development uses a directory
on disk; production points at an S3-compatible bucket (DigitalOcean Spaces,
MinIO, AWS) through boto3.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from werkzeug.utils import secure_filename


class StorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _resolve(self, key: str) -> Path:
        parts = PurePosixPath(key.replace("\\", "/").lstrip("/")).parts
        if not parts or ".." in parts:
            raise StorageError(f"Invalid storage key: {key}")
        return self.root.joinpath(*parts)

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        target = self._resolve(key)
        if not target.is_file():
            raise StorageError(f"Missing object: {key}")
        return target.open("rb")

    def delete(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def client(self):
        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def check_bucket(self) -> None:
        try:
            self.client().head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Bucket {self.bucket!r} is not reachable: {e}") from e

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        params: dict[str, object] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            self.client().put_object(**params)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload failed for {key}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        try:
            return self.client().get_object(Bucket=self.bucket, Key=key)["Body"]  # type: ignore[return-value]
        except ClientError as e:
            raise StorageError(f"Missing object: {key}") from e

    def delete(self, key: str) -> None:
        try:
            self.client().delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Delete failed for {key}: {e}") from e


def storage_from_config(config) -> Storage:
    def _opt(name: str, default: str = "") -> str:
        return (config.get(name) or default).strip()

    if _opt("STORAGE_BACKEND", "local").lower() == "s3":
        return S3Storage(
            endpoint=_opt("S3_ENDPOINT"),
            region=_opt("S3_REGION", "nyc3"),
            bucket=_opt("S3_BUCKET"),
            access_key_id=_opt("S3_ACCESS_KEY_ID"),
            secret_access_key=_opt("S3_SECRET_ACCESS_KEY"),
        )
    root = _opt("STORAGE_ROOT")
    return LocalStorage(root=Path(root) if root else Path.cwd() / "storage")


def build_storage_key(area: str, owner: str, filename: str, upload_date: date | None = None) -> str:
    """``<area>/<owner>/<YYYY-MM-DD>/<filename>``, e.g. ``job_applications/AB12CD34EF56/2026-10-18/My_CV.pdf``."""
    day = (upload_date or date.today()).isoformat()
    owner_part = owner.replace("/", "_").replace("\\", "_")
    return "/".join((area, owner_part, day, secure_filename(filename) or "upload.bin"))
