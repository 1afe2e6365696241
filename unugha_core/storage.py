from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .client import SupabaseClient


logger = logging.getLogger(__name__)

BANNER_BUCKET = "banners"
AVATAR_BUCKET = "avatars"

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg"}


def storage_url(path: str | None, bucket: str = BANNER_BUCKET, base_url: str | None = None) -> Optional[str]:
    """Resolve a stored object path to a public URL.

    Paths that are already absolute (``http``/``https``) are returned as-is;
    anything else is treated as a key inside ``bucket``.
    """

    if not path:
        return None
    if path.startswith("http"):
        return path
    base = base_url if base_url is not None else os.getenv("SUPABASE_URL", "")
    return f"{base.rstrip('/')}/storage/v1/object/public/{bucket}/{path}"


@dataclass
class FileUpload:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return "bin"
        return self.filename.rsplit(".", 1)[-1].lower() or "bin"


def validate_image(upload: FileUpload, max_bytes: int = MAX_IMAGE_BYTES) -> None:
    if upload.content_type.lower() not in ALLOWED_IMAGE_TYPES:
        raise ValueError("Only PNG or JPEG images can be uploaded")
    if upload.size > max_bytes:
        raise ValueError(f"File is too large. Maximum size is {max_bytes // (1024 * 1024)}MB")
    if upload.size == 0:
        raise ValueError("File is empty")


class StorageClient:
    """File storage sub-interface of :class:`SupabaseClient`."""

    def __init__(self, client: "SupabaseClient") -> None:
        self._client = client

    async def upload(self, bucket: str, path: str, upload: FileUpload, upsert: bool = False) -> str:
        headers = {
            "Content-Type": upload.content_type,
            "x-upsert": "true" if upsert else "false",
            "cache-control": "max-age=3600",
        }
        await self._client.request(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            content=upload.content,
            headers=headers,
        )
        logger.info("Uploaded %s bytes to %s/%s", upload.size, bucket, path)
        return path

    async def remove(self, bucket: str, paths: List[str]) -> None:
        if not paths:
            return
        await self._client.request(
            "DELETE",
            f"/storage/v1/object/{bucket}",
            json={"prefixes": paths},
        )

    def public_url(self, path: str | None, bucket: str = BANNER_BUCKET) -> Optional[str]:
        return storage_url(path, bucket, base_url=self._client.url)
