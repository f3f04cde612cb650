"""Storage client protocol and data types.

This module defines the interface the gateway needs from an object store:
listing, metadata, object reads and writes, multipart uploads, presigned
URLs and deletion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class ObjectNotFoundError(StorageError):
    """Raised when the store reports that a key, bucket or upload is missing."""


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Represents a completed part in a multipart upload."""

    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class MultipartUpload:
    """Result of initiating a multipart upload."""

    upload_id: str
    bucket: str
    object_key: str


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata from a HEAD object request."""

    object_key: str
    size_bytes: int
    etag: str | None
    content_type: str | None
    http_status: int = 200


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    """One entry of a bucket listing."""

    object_key: str
    size_bytes: int
    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True, slots=True)
class ObjectListing:
    """Every object found under a prefix."""

    prefix: str
    objects: tuple[ObjectSummary, ...]
    http_status: int = 200

    @property
    def keys(self) -> list[str]:
        return [obj.object_key for obj in self.objects]


@dataclass(frozen=True, slots=True)
class StoredObject:
    """An object fetched with its full body."""

    object_key: str
    body: bytes
    content_type: str | None
    etag: str | None
    http_status: int = 200

    @property
    def size_bytes(self) -> int:
        return len(self.body)


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations are synchronous; callers that live on an event loop are
    expected to run them in a worker thread.
    """

    def check_bucket(self, *, bucket: str) -> None:
        """Verify the bucket is reachable.

        Raises:
            ObjectNotFoundError: If the bucket does not exist.
            StorageError: If the store cannot be reached.
        """
        ...

    def list_objects(self, *, bucket: str, prefix: str) -> ObjectListing:
        """List every object whose key starts with ``prefix``.

        Args:
            bucket: Target bucket name.
            prefix: Key prefix; an empty prefix lists the whole bucket.

        Returns:
            ObjectListing with all matching objects, across every page.

        Raises:
            ObjectNotFoundError: If the bucket does not exist.
            StorageError: If the operation fails.
        """
        ...

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def get_object(self, *, bucket: str, object_key: str) -> StoredObject:
        """Download an object into memory.

        Raises:
            ObjectNotFoundError: If the object doesn't exist.
            StorageError: If the operation fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> str | None:
        """Store ``body`` under ``object_key`` in a single request.

        Returns:
            The ETag reported by the store, if any.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            content_type: MIME type of the object.
            server_side_encryption: Encryption method requested from the store,
                e.g. ``AES256``.

        Returns:
            MultipartUpload containing the upload_id for subsequent operations.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part of a multipart upload.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            upload_id: Multipart upload ID from init_multipart_upload.
            part_number: Part number (1-based, max 10000).
            body: Part content.

        Returns:
            CompletedPart carrying the ETag the store assigned to the part.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for a GET request on one object."""
        ...

    def presign_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for a PUT request on one object."""
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> int:
        """Delete an object from storage.

        Returns:
            The HTTP status code the store answered with (204 on success).

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def delete_objects(
        self, *, bucket: str, object_keys: Sequence[str]
    ) -> list[str]:
        """Delete many objects.

        Returns:
            The keys the store refused to delete; empty when all succeeded.

        Raises:
            StorageError: If a batch request fails as a whole.
        """
        ...
