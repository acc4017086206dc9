"""
Object storage for uploaded documents.

Backends:
    local   files under STORAGE_ROOT (default; dev and tests)
    s3      any S3-compatible bucket through boto3

Both return an opaque ``storage_path`` (the object key) from ``upload`` and
accept it back in ``delete`` / ``signed_url``.

Configuration (env vars):
    STORAGE_BACKEND   local | s3
    STORAGE_ROOT      directory for the local backend
    STORAGE_BUCKET    bucket name for s3
    S3_ENDPOINT_URL, S3_REGION, S3_ACCESS_KEY, S3_SECRET_KEY
"""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path

from flask import current_app

logger = logging.getLogger(__name__)


def _clean_segment(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", (value or "").strip())
    return cleaned or "file"


def build_key(folder: str, file_name: str) -> str:
    """``<folder>/<uuid>-<sanitised file name>``"""
    folder = "/".join(_clean_segment(p) for p in folder.split("/") if p)
    return f"{folder}/{uuid.uuid4().hex}-{_clean_segment(file_name)}"


class StorageBackend:
    backend_name = "base"

    def upload(self, content: bytes, file_name: str, mime_type: str, folder: str) -> str:
        raise NotImplementedError

    def delete(self, storage_path: str) -> bool:
        raise NotImplementedError

    def signed_url(self, storage_path: str, expires_in: int = 3600) -> str:
        raise NotImplementedError


class LocalStorage(StorageBackend):
    backend_name = "local"

    def __init__(self, root: str, public_base_url: str = "/files"):
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, storage_path: str) -> Path:
        path = (self._root / storage_path).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError("storage path escapes the storage root")
        return path

    def upload(self, content: bytes, file_name: str, mime_type: str, folder: str) -> str:
        key = build_key(folder, file_name)
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.debug("Stored %d bytes at %s", len(content), key)
        return key

    def delete(self, storage_path: str) -> bool:
        path = self._path(storage_path)
        if not path.exists():
            return False
        path.unlink()
        return True

    def signed_url(self, storage_path: str, expires_in: int = 3600) -> str:
        return f"{self._public_base_url}/{storage_path}"

    def read(self, storage_path: str) -> bytes:
        return self._path(storage_path).read_bytes()


class S3Storage(StorageBackend):
    backend_name = "s3"

    def __init__(self, *, bucket: str, endpoint_url: str | None = None, region: str | None = None,
                 access_key: str | None = None, secret_key: str | None = None):
        self._bucket = bucket
        self._client_kwargs = {
            "endpoint_url": endpoint_url or None,
            "region_name": region or None,
            "aws_access_key_id": access_key or None,
            "aws_secret_access_key": secret_key or None,
        }
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            self._client = boto3.client("s3", **self._client_kwargs)
        return self._client

    def upload(self, content: bytes, file_name: str, mime_type: str, folder: str) -> str:
        key = build_key(folder, file_name)
        self._get_client().put_object(Bucket=self._bucket, Key=key, Body=content, ContentType=mime_type)
        return key

    def delete(self, storage_path: str) -> bool:
        self._get_client().delete_object(Bucket=self._bucket, Key=storage_path)
        return True

    def signed_url(self, storage_path: str, expires_in: int = 3600) -> str:
        return self._get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": storage_path},
            ExpiresIn=expires_in,
        )


def get_storage() -> StorageBackend:
    """Build the configured backend (cached on the app's extensions dict)."""
    cached = current_app.extensions.get("document_storage")
    if cached is not None:
        return cached

    cfg = current_app.config
    backend = (cfg.get("STORAGE_BACKEND") or "local").lower()
    if backend == "s3":
        storage = S3Storage(
            bucket=cfg["STORAGE_BUCKET"],
            endpoint_url=cfg.get("S3_ENDPOINT_URL"),
            region=cfg.get("S3_REGION"),
            access_key=cfg.get("S3_ACCESS_KEY"),
            secret_key=cfg.get("S3_SECRET_KEY"),
        )
    elif backend == "local":
        storage = LocalStorage(cfg["STORAGE_ROOT"])
    else:
        raise RuntimeError(f"Unknown STORAGE_BACKEND: {backend}")

    current_app.extensions["document_storage"] = storage
    logger.info("Document storage backend: %s", storage.backend_name)
    return storage
