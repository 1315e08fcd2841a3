"""Media storage for assignment uploads.

Two backends behind one Protocol, picked at import time like the database
and Redis clients:

  InMemoryMediaStorage  dev/test; URLs look like real provider URLs so the
                        public-id round trip is exercised everywhere.
  HttpMediaStorage      a Cloudinary-style signed REST API over httpx.

Stored URLs have the shape ``.../upload/v<version>/<folder>/<name>.<ext>``;
the public id is everything after the version segment, minus the extension.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import SETTINGS
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

DOCUMENT_FOLDER = "lms_lessons/documents"

_UPLOAD_PATH = re.compile(r"/upload/v\d+/(?P<path>.+)$")


def public_id_from_url(url: str) -> str | None:
    """Extract ``folder/name`` from a stored media URL, or None."""
    match = _UPLOAD_PATH.search(url)
    if match is None:
        return None
    path = match.group("path")
    stem, dot, ext = path.rpartition(".")
    # A dot inside a folder name is not an extension
    if dot and "/" not in ext:
        return stem
    return path


@dataclass(frozen=True, slots=True)
class StoredMedia:
    public_id: str
    url: str
    bytes: int


class MediaStorage(Protocol):
    async def upload(self, data: bytes, filename: str, public_id: str) -> StoredMedia: ...
    async def delete(self, public_id: str) -> None: ...
    def owns(self, url: str) -> bool: ...


def _extension(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot and ext else "bin"


class InMemoryMediaStorage:
    BASE_URL = "https://media.invalid/demo/raw"

    def __init__(self, *, max_bytes: int | None = None) -> None:
        self._max_bytes = max_bytes if max_bytes is not None else SETTINGS.max_upload_bytes
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_deletes = False

    def clear(self) -> None:
        self.objects.clear()
        self.deleted.clear()
        self.fail_deletes = False

    def owns(self, url: str) -> bool:
        return url.startswith(self.BASE_URL)

    async def upload(self, data: bytes, filename: str, public_id: str) -> StoredMedia:
        if len(data) > self._max_bytes:
            raise ExternalServiceError(
                "File size exceeds the upload limit",
                code="FILE_TOO_LARGE",
                status_code=400,
            )
        full_id = f"{DOCUMENT_FOLDER}/{public_id}"
        self.objects[full_id] = data
        url = f"{self.BASE_URL}/upload/v{int(time.time())}/{full_id}.{_extension(filename)}"
        return StoredMedia(public_id=full_id, url=url, bytes=len(data))

    async def delete(self, public_id: str) -> None:
        if self.fail_deletes:
            raise ExternalServiceError("media delete failed", code="STORAGE_ERROR")
        self.objects.pop(public_id, None)
        self.deleted.append(public_id)


class HttpMediaStorage:
    """Signed upload/destroy calls against a Cloudinary-compatible API.

    Requests are signed with SHA-1 over the sorted parameters plus the API
    secret.  Any provider 4xx becomes a 400 for the caller (the upload
    itself was rejected); transport errors and 5xx become a 502.
    """

    def __init__(
        self,
        *,
        base_url: str,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        max_bytes: int,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._max_bytes = max_bytes
        self._client = client or httpx.AsyncClient(timeout=60.0)

    def _endpoint(self, action: str) -> str:
        return f"{self._base_url}/{self._cloud_name}/raw/{action}"

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        signature = hashlib.sha1((to_sign + self._api_secret).encode()).hexdigest()
        return {**params, "api_key": self._api_key, "signature": signature}

    def owns(self, url: str) -> bool:
        return f"/{self._cloud_name}/" in url and public_id_from_url(url) is not None

    async def upload(self, data: bytes, filename: str, public_id: str) -> StoredMedia:
        if len(data) > self._max_bytes:
            raise ExternalServiceError(
                "File size exceeds the upload limit",
                code="FILE_TOO_LARGE",
                status_code=400,
            )

        form = self._signed(
            {
                "folder": DOCUMENT_FOLDER,
                "public_id": public_id,
                "format": _extension(filename),
            }
        )
        try:
            resp = await self._client.post(
                self._endpoint("upload"),
                data=form,
                files={"file": (filename, data)},
            )
        except httpx.HTTPError as exc:
            logger.error("Media upload transport error: %s", exc)
            raise ExternalServiceError("Upload failed") from exc

        if resp.status_code >= 400:
            message = _provider_message(resp)
            logger.warning(
                "Media upload rejected status=%d message=%s", resp.status_code, message
            )
            if "too large" in message.lower():
                raise ExternalServiceError(
                    "File size exceeds the upload limit",
                    code="FILE_TOO_LARGE",
                    status_code=400,
                    provider_status=resp.status_code,
                )
            if resp.status_code < 500:
                raise ExternalServiceError(
                    f"Media storage rejected the upload: {message}",
                    code="STORAGE_ERROR",
                    status_code=400,
                    provider_status=resp.status_code,
                )
            raise ExternalServiceError(
                "Upload failed", provider_status=resp.status_code
            )

        body = resp.json()
        return StoredMedia(
            public_id=body["public_id"],
            url=body["secure_url"],
            bytes=int(body.get("bytes", len(data))),
        )

    async def delete(self, public_id: str) -> None:
        form = self._signed({"public_id": public_id})
        try:
            resp = await self._client.post(self._endpoint("destroy"), data=form)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                "Media delete failed", code="STORAGE_ERROR"
            ) from exc
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Media delete failed: {_provider_message(resp)}",
                code="STORAGE_ERROR",
                provider_status=resp.status_code,
            )

    async def aclose(self) -> None:
        await self._client.aclose()


def _provider_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json()["error"]["message"])
    except (ValueError, KeyError, TypeError):
        return resp.text


def build_media_storage() -> MediaStorage:
    if SETTINGS.media_storage_configured:
        logger.info("Media storage: %s", SETTINGS.media_storage_url)
        return HttpMediaStorage(
            base_url=SETTINGS.media_storage_url or "",
            cloud_name=SETTINGS.media_cloud_name or "",
            api_key=SETTINGS.media_api_key or "",
            api_secret=SETTINGS.media_api_secret or "",
            max_bytes=SETTINGS.max_upload_bytes,
        )
    return InMemoryMediaStorage()


media_storage: MediaStorage = build_media_storage()


@asynccontextmanager
async def lifespan_media():
    """Close the HTTP storage client on shutdown."""
    try:
        yield
    finally:
        # Module global, read at shutdown time
        if isinstance(media_storage, HttpMediaStorage):
            await media_storage.aclose()
            logger.info("Media storage client closed")
