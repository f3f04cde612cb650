"""Object service: the gateway's operations against a single bucket.

Every operation here is a thin sequence of store calls. Listing, metadata,
presigning, single-request uploads, downloads and deletion are one call each
(two for the existence-checked delete); multipart uploads go through
:class:`UploadSequencer` and directory downloads list, fetch and pack the
objects into one zip archive.
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Sequence

from starlette.concurrency import run_in_threadpool

from storage_gateway.app.services.base import BaseService, EmptyResultError, ServiceError
from storage_gateway.app.services.upload_sequencer import UploadSequencer
from storage_gateway.common.config import Settings
from storage_gateway.infra.storage.client import (
    ObjectListing,
    ObjectNotFoundError,
    StorageClient,
    StorageError,
)

logger = logging.getLogger("storage")

ARCHIVE_FILENAME = "file.zip"


class BatchUploadError(ServiceError):
    """Raised when a file in an upload batch fails.

    Files earlier in the batch stay stored; nothing is rolled back.
    """

    def __init__(self, failed_key: str, completed_keys: Sequence[str], cause: Exception):
        self.failed_key = failed_key
        self.completed_keys = list(completed_keys)
        self.cause = cause
        super().__init__(f"Upload of '{failed_key}' failed: {cause}")


@dataclass(frozen=True, slots=True)
class UploadItem:
    """One file of an upload batch."""

    filename: str
    stream: BinaryIO
    size: int
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class DownloadedFile:
    """Bytes to hand back as an attachment."""

    filename: str
    content: bytes


def build_object_key(directory_path: str | None, filename: str) -> str:
    """Join a caller-supplied directory path and a filename into an object key."""
    if not directory_path:
        return filename
    return f"{directory_path}/{filename}"


def key_basename(object_key: str) -> str:
    """Return the last path segment of a key."""
    return object_key.rsplit("/", 1)[-1]


class ObjectService(BaseService):
    """Application service for the bucket configured in settings."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        settings: Settings,
        sequencer: UploadSequencer | None = None,
    ) -> None:
        super().__init__(storage, settings=settings)
        self._sequencer = sequencer or UploadSequencer(storage, settings=settings)

    @property
    def sequencer(self) -> UploadSequencer:
        return self._sequencer

    async def _list(self, prefix: str) -> ObjectListing:
        return await self._call(
            "list_objects",
            self.storage.list_objects,
            bucket=self.bucket,
            prefix=prefix,
        )

    async def list_keys(self, prefix: str) -> list[str]:
        """List the keys under ``prefix``; no match yields an empty list.

        Raises:
            ObjectNotFoundError: If the store reports the bucket missing.
            EmptyResultError: If the store answered with a non-OK status.
        """
        listing = await self._list(prefix)
        if listing.http_status != 200:
            raise EmptyResultError(
                f"Listing '{prefix}' returned status {listing.http_status}"
            )
        return listing.keys

    async def get_object_key(self, object_key: str) -> str:
        """Confirm that ``object_key`` exists and return it."""
        head = await self._call(
            "head_object",
            self.storage.head_object,
            bucket=self.bucket,
            object_key=object_key,
        )
        if head.http_status != 200:
            raise EmptyResultError(
                f"Metadata for '{object_key}' returned status {head.http_status}"
            )
        return head.object_key

    async def presign_download_url(self, object_key: str) -> str:
        return await self._call(
            "presign_download",
            self.storage.presign_download,
            bucket=self.bucket,
            object_key=object_key,
            expires_in=self.settings.STORAGE_PRESIGN_EXPIRES_SECONDS,
        )

    async def presign_upload_url(self, object_key: str) -> str:
        return await self._call(
            "presign_upload",
            self.storage.presign_upload,
            bucket=self.bucket,
            object_key=object_key,
            expires_in=self.settings.STORAGE_PRESIGN_EXPIRES_SECONDS,
        )

    async def upload_files(
        self, files: Sequence[UploadItem], *, directory_path: str | None = None
    ) -> list[str]:
        """Store each file with one request, in order.

        Returns:
            The keys written.

        Raises:
            BatchUploadError: On the first failing file.
        """
        completed: list[str] = []
        for item in files:
            object_key = build_object_key(directory_path, item.filename)
            try:
                body = await run_in_threadpool(item.stream.read)
                await self._call(
                    "put_object",
                    self.storage.put_object,
                    bucket=self.bucket,
                    object_key=object_key,
                    body=body,
                    content_type=item.content_type,
                    server_side_encryption=self.settings.STORAGE_SERVER_SIDE_ENCRYPTION,
                )
            except Exception as exc:
                raise BatchUploadError(object_key, completed, exc) from exc
            completed.append(object_key)
        return completed

    async def multipart_upload_files(
        self, files: Sequence[UploadItem], *, directory_path: str | None = None
    ) -> list[str]:
        """Upload each file through its own multipart session, in order.

        A failing file's session is aborted by the sequencer; sessions of
        files completed earlier are left as they are.

        Raises:
            BatchUploadError: On the first failing file.
        """
        completed: list[str] = []
        for item in files:
            object_key = build_object_key(directory_path, item.filename)
            try:
                await self._sequencer.upload_stream(
                    item.stream,
                    object_key=object_key,
                    size=item.size,
                    content_type=item.content_type,
                    server_side_encryption=self.settings.STORAGE_SERVER_SIDE_ENCRYPTION,
                )
            except Exception as exc:
                raise BatchUploadError(object_key, completed, exc) from exc
            completed.append(object_key)
        return completed

    async def download_object(self, object_key: str) -> DownloadedFile:
        stored = await self._call(
            "get_object",
            self.storage.get_object,
            bucket=self.bucket,
            object_key=object_key,
        )
        if stored.http_status != 200:
            raise EmptyResultError(
                f"Download of '{object_key}' returned status {stored.http_status}"
            )
        return DownloadedFile(
            filename=key_basename(stored.object_key), content=stored.body
        )

    async def download_directory(self, prefix: str) -> DownloadedFile:
        """Pack every object under ``prefix`` into one zip archive.

        Entries are named by the basename of their key and stored without
        compression. Folder marker keys (ending in ``/``) are skipped.
        """
        listing = await self._list(prefix)
        if listing.http_status != 200:
            raise EmptyResultError(
                f"Listing '{prefix}' returned status {listing.http_status}"
            )

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
            for summary in listing.objects:
                if summary.object_key.endswith("/"):
                    continue
                stored = await self._call(
                    "get_object",
                    self.storage.get_object,
                    bucket=self.bucket,
                    object_key=summary.object_key,
                )
                archive.writestr(key_basename(stored.object_key), stored.body)
        return DownloadedFile(filename=ARCHIVE_FILENAME, content=buffer.getvalue())

    async def delete_directory(self, prefix: str) -> list[str]:
        """Delete every object under ``prefix`` and return the deleted keys.

        Raises:
            ObjectNotFoundError: If the listing fails or answers non-OK.
            StorageError: If the store refuses to delete some keys.
        """
        try:
            listing = await self._list(prefix)
        except StorageError as exc:
            raise ObjectNotFoundError(f"Cannot list '{prefix}': {exc}") from exc
        if listing.http_status != 200:
            raise ObjectNotFoundError(
                f"Listing '{prefix}' returned status {listing.http_status}"
            )

        keys = listing.keys
        if not keys:
            return []
        failed = await self._call(
            "delete_objects",
            self.storage.delete_objects,
            bucket=self.bucket,
            object_keys=keys,
        )
        if failed:
            raise StorageError(
                f"Failed to delete {len(failed)} of {len(keys)} objects under '{prefix}'"
            )
        logger.info(
            "directory_deleted prefix=%s count=%s",
            prefix,
            len(keys),
            extra={"extra": {"prefix": prefix, "count": len(keys)}},
        )
        return keys

    async def delete_object(self, object_key: str) -> bool:
        """Delete one object after confirming it exists.

        Returns:
            True when the store confirmed the deletion with 204.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        head = await self._call(
            "head_object",
            self.storage.head_object,
            bucket=self.bucket,
            object_key=object_key,
        )
        if head.http_status != 200:
            return False
        status = await self._call(
            "delete_object",
            self.storage.delete_object,
            bucket=self.bucket,
            object_key=object_key,
        )
        return status == 204
