"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from storage_gateway.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    ObjectHead,
    ObjectListing,
    ObjectNotFoundError,
    ObjectSummary,
    StorageError,
    StoredObject,
)

if TYPE_CHECKING:
    from storage_gateway.common.config import Settings

# DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

NOT_FOUND_CODES = frozenset(
    {"404", "NoSuchKey", "NoSuchBucket", "NotFound", "NoSuchUpload"}
)


def _error_code(exc: BaseException) -> str | None:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or "") or None
    return None


def _storage_error(message: str, exc: BaseException) -> StorageError:
    """Wrap an SDK failure, keeping store-side "missing" errors distinguishable."""
    if _error_code(exc) in NOT_FOUND_CODES:
        return ObjectNotFoundError(f"{message}: {exc}")
    return StorageError(f"{message}: {exc}")


def _status_of(response: dict[str, Any], default: int = 200) -> int:
    metadata = response.get("ResponseMetadata") or {}
    status = metadata.get("HTTPStatusCode")
    return int(status) if status is not None else default


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses one boto3 client for all storage operations; boto3 clients are
    safe to share between threads once constructed.
    """

    def __init__(self, *, settings: "Settings") -> None:
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings."""
        config = Config(
            s3={"addressing_style": settings.S3_ADDRESSING_STYLE},
            connect_timeout=settings.S3_CONNECT_TIMEOUT,
            read_timeout=settings.S3_READ_TIMEOUT,
            # a single attempt; failures surface to the caller unretried
            retries={"max_attempts": 1, "mode": "standard"},
        )

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    def check_bucket(self, *, bucket: str) -> None:
        try:
            self._client.head_bucket(Bucket=bucket)
        except Exception as exc:
            raise _storage_error(f"Bucket '{bucket}' is not reachable", exc) from exc

    def list_objects(self, *, bucket: str, prefix: str) -> ObjectListing:
        """List every object under a prefix, following continuation tokens."""
        objects: list[ObjectSummary] = []
        status = 200
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                page_status = _status_of(page)
                if page_status != 200:
                    status = page_status
                for item in page.get("Contents", []) or []:
                    objects.append(
                        ObjectSummary(
                            object_key=str(item["Key"]),
                            size_bytes=int(item.get("Size") or 0),
                            etag=item.get("ETag"),
                            last_modified=item.get("LastModified"),
                        )
                    )
        except Exception as exc:
            raise _storage_error("Failed to list objects", exc) from exc

        return ObjectListing(prefix=prefix, objects=tuple(objects), http_status=status)

    def head_object(self, *, bucket: str, object_key: str) -> ObjectHead:
        """Get object metadata without downloading the content."""
        try:
            response = self._client.head_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _storage_error("Failed to get object metadata", exc) from exc

        size = response.get("ContentLength")
        return ObjectHead(
            object_key=object_key,
            size_bytes=int(size) if size is not None else 0,
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            http_status=_status_of(response),
        )

    def get_object(self, *, bucket: str, object_key: str) -> StoredObject:
        """Download an object into memory."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
            body = response["Body"]
            try:
                content = body.read()
            finally:
                body.close()
        except Exception as exc:
            raise _storage_error("Failed to get object", exc) from exc

        return StoredObject(
            object_key=object_key,
            body=content,
            content_type=response.get("ContentType"),
            etag=response.get("ETag"),
            http_status=_status_of(response),
        )

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: bytes,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> str | None:
        """Store an object in a single request."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if server_side_encryption:
            params["ServerSideEncryption"] = server_side_encryption

        try:
            response = self._client.put_object(**params)
        except Exception as exc:
            raise _storage_error("Failed to put object", exc) from exc
        return response.get("ETag")

    def init_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> MultipartUpload:
        """Initialize a multipart upload session."""
        params: dict[str, Any] = {"Bucket": bucket, "Key": object_key}
        if content_type:
            params["ContentType"] = content_type
        if server_side_encryption:
            params["ServerSideEncryption"] = server_side_encryption

        try:
            response = self._client.create_multipart_upload(**params)
        except Exception as exc:
            raise _storage_error("Failed to create multipart upload", exc) from exc

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("S3 response missing UploadId")

        return MultipartUpload(
            upload_id=str(upload_id),
            bucket=bucket,
            object_key=object_key,
        )

    def upload_part(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> CompletedPart:
        """Upload one part and return its ETag."""
        try:
            response = self._client.upload_part(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=int(part_number),
                Body=body,
            )
        except Exception as exc:
            raise _storage_error(
                f"Failed to upload part {part_number}", exc
            ) from exc

        etag = response.get("ETag")
        if not etag:
            raise StorageError(f"S3 response missing ETag for part {part_number}")
        return CompletedPart(part_number=int(part_number), etag=str(etag))

    def complete_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
        parts: Sequence[CompletedPart],
    ) -> None:
        """Complete a multipart upload by combining all parts."""
        multipart_payload = {
            "Parts": [
                {"ETag": part.etag, "PartNumber": int(part.part_number)}
                for part in sorted(parts, key=lambda p: p.part_number)
            ]
        }

        try:
            self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload=multipart_payload,
            )
        except Exception as exc:
            raise _storage_error("Failed to complete multipart upload", exc) from exc

    def abort_multipart_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        upload_id: str,
    ) -> None:
        """Abort a multipart upload and clean up uploaded parts."""
        try:
            self._client.abort_multipart_upload(
                Bucket=bucket,
                Key=object_key,
                UploadId=upload_id,
            )
        except Exception as exc:
            raise _storage_error("Failed to abort multipart upload", exc) from exc

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        return self._presign("get_object", bucket, object_key, expires_in)

    def presign_upload(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for uploading an object with PUT."""
        return self._presign("put_object", bucket, object_key, expires_in)

    def _presign(
        self, client_method: str, bucket: str, object_key: str, expires_in: int
    ) -> str:
        try:
            url = self._client.generate_presigned_url(
                client_method,
                Params={"Bucket": bucket, "Key": object_key},
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise _storage_error("Failed to generate presigned URL", exc) from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

    def delete_object(self, *, bucket: str, object_key: str) -> int:
        """Delete an object from storage."""
        try:
            response = self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _storage_error("Failed to delete object", exc) from exc
        return _status_of(response, default=204)

    def delete_objects(
        self, *, bucket: str, object_keys: Sequence[str]
    ) -> list[str]:
        """Delete objects in batches, returning the keys the store rejected."""
        failed: list[str] = []
        keys = list(object_keys)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                response = self._client.delete_objects(
                    Bucket=bucket,
                    Delete={
                        "Objects": [{"Key": key} for key in batch],
                        "Quiet": True,
                    },
                )
            except Exception as exc:
                raise _storage_error("Failed to delete objects", exc) from exc
            failed.extend(
                str(error.get("Key")) for error in response.get("Errors", []) or []
            )
        return failed
