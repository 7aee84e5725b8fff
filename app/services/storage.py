"""Object storage backends: Google Cloud Storage and a local-disk fallback."""
import asyncio
import hashlib
import hmac
import logging
import os
import secrets
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from urllib.parse import quote, urlencode

from app.config import Settings

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    @abstractmethod
    async def upload(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str] | None = None
    ) -> None: ...

    @abstractmethod
    async def signed_read_url(self, path: str, expires: timedelta) -> str: ...

    @abstractmethod
    def public_url(self, path: str) -> str: ...


class GCSStorage(ObjectStorage):
    def __init__(self, bucket_name: str, project_id: str = "", key_file: str = ""):
        from google.cloud import storage as gcs

        if key_file:
            client = gcs.Client.from_service_account_json(key_file, project=project_id or None)
        else:
            client = gcs.Client(project=project_id or None)
        self.bucket_name = bucket_name
        self.bucket = client.bucket(bucket_name)

    async def upload(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str] | None = None
    ) -> None:
        blob = self.bucket.blob(path)
        if metadata:
            blob.metadata = metadata
        blob.cache_control = "public, max-age=31536000"
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)

    async def signed_read_url(self, path: str, expires: timedelta) -> str:
        blob = self.bucket.blob(path)
        return await asyncio.to_thread(
            blob.generate_signed_url, version="v4", expiration=expires, method="GET"
        )

    def public_url(self, path: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{path}"


class LocalStorage(ObjectStorage):
    """Stores objects under a directory and signs read URLs with HMAC-SHA256.

    Signed URLs are served by the /media route.
    """

    def __init__(self, root: str, base_url: str, signing_key: str = ""):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        # without a configured key, URLs stop verifying after a restart
        self._key = (signing_key or secrets.token_urlsafe(32)).encode()

    def resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full_path]) != self.root:
            raise ValueError(f"Path escapes storage root: {path}")
        return full_path

    def _sign(self, path: str, expires: int) -> str:
        return hmac.new(self._key, f"{path}:{expires}".encode(), hashlib.sha256).hexdigest()

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(path, expires), signature)

    async def upload(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str] | None = None
    ) -> None:
        full_path = self.resolve(path)

        def _write() -> None:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(data)

        await asyncio.to_thread(_write)

    async def signed_read_url(self, path: str, expires: timedelta) -> str:
        expires_at = int(time.time() + expires.total_seconds())
        query = urlencode({"expires": expires_at, "signature": self._sign(path, expires_at)})
        return f"{self.public_url(path)}?{query}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/media/{quote(path)}"


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "gcs":
        if not settings.gcs_bucket_name:
            raise RuntimeError("GCS_BUCKET_NAME must be set when STORAGE_BACKEND=gcs")
        logger.info("Using GCS bucket %s", settings.gcs_bucket_name)
        return GCSStorage(
            bucket_name=settings.gcs_bucket_name,
            project_id=settings.gcs_project_id,
            key_file=settings.gcs_key_file,
        )

    root = os.path.join(settings.data_dir, "media")
    logger.info("Using local storage at %s", root)
    return LocalStorage(root=root, base_url=settings.app_url, signing_key=settings.media_signing_key)
