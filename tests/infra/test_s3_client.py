"""Tests for S3 storage client."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from storage_gateway.infra.storage.client import (
    CompletedPart,
    MultipartUpload,
    ObjectNotFoundError,
    StorageError,
)
from storage_gateway.infra.storage.s3_client import DELETE_BATCH_SIZE, S3StorageClient


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestS3StorageClient:
    """Test S3StorageClient implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        mock_client = MagicMock()
        with patch.object(S3StorageClient, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def mock_settings(self):
        """Create mock settings for S3."""
        settings = MagicMock()
        settings.S3_ENDPOINT_URL = "http://localhost:9000"
        settings.S3_REGION = "us-east-1"
        settings.S3_ACCESS_KEY_ID = "test-key"
        settings.S3_SECRET_ACCESS_KEY = "test-secret"
        settings.S3_USE_SSL = False
        settings.S3_ADDRESSING_STYLE = "path"
        return settings

    @pytest.fixture
    def client(self, mock_s3, mock_settings):
        """Create S3StorageClient with mocked boto3."""
        return S3StorageClient(settings=mock_settings)

    def test_list_objects_follows_pages(self, client, mock_s3):
        """Test listing collects keys from every page."""
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {
                "ResponseMetadata": {"HTTPStatusCode": 200},
                "Contents": [{"Key": "docs/a.txt", "Size": 3, "ETag": '"e1"'}],
            },
            {
                "ResponseMetadata": {"HTTPStatusCode": 200},
                "Contents": [{"Key": "docs/b.txt", "Size": 5}],
            },
        ]
        mock_s3.get_paginator.return_value = paginator

        listing = client.list_objects(bucket="test-bucket", prefix="docs/")

        assert listing.keys == ["docs/a.txt", "docs/b.txt"]
        assert listing.http_status == 200
        assert listing.objects[1].size_bytes == 5
        mock_s3.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(Bucket="test-bucket", Prefix="docs/")

    def test_list_objects_empty_page(self, client, mock_s3):
        """Test listing a prefix without matches."""
        paginator = MagicMock()
        paginator.paginate.return_value = [{"ResponseMetadata": {"HTTPStatusCode": 200}}]
        mock_s3.get_paginator.return_value = paginator

        listing = client.list_objects(bucket="test-bucket", prefix="none/")

        assert listing.keys == []

    def test_list_objects_missing_bucket(self, client, mock_s3):
        """Test NoSuchBucket maps to ObjectNotFoundError."""
        mock_s3.get_paginator.return_value.paginate.side_effect = _client_error(
            "NoSuchBucket", "ListObjectsV2"
        )

        with pytest.raises(ObjectNotFoundError, match="Failed to list objects"):
            client.list_objects(bucket="test-bucket", prefix="docs/")

    def test_head_object(self, client, mock_s3):
        """Test getting object metadata."""
        mock_s3.head_object.return_value = {
            "ContentLength": 1024,
            "ETag": '"test-etag"',
            "ContentType": "application/pdf",
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }

        result = client.head_object(bucket="test-bucket", object_key="test/key")

        assert result.size_bytes == 1024
        assert result.etag == '"test-etag"'
        assert result.content_type == "application/pdf"
        assert result.http_status == 200
        mock_s3.head_object.assert_called_once_with(
            Bucket="test-bucket", Key="test/key"
        )

    def test_head_object_missing_size(self, client, mock_s3):
        """Test getting object metadata when ContentLength is missing."""
        mock_s3.head_object.return_value = {"ETag": '"test-etag"'}

        result = client.head_object(bucket="test-bucket", object_key="test/key")

        assert result.size_bytes == 0
        assert result.http_status == 200

    def test_head_object_not_found(self, client, mock_s3):
        """Test a 404 from HEAD maps to ObjectNotFoundError."""
        mock_s3.head_object.side_effect = _client_error("404")

        with pytest.raises(ObjectNotFoundError, match="Failed to get object metadata"):
            client.head_object(bucket="test-bucket", object_key="test/key")

    def test_head_object_exception(self, client, mock_s3):
        """Test other failures stay generic StorageErrors."""
        mock_s3.head_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError) as exc_info:
            client.head_object(bucket="test-bucket", object_key="test/key")
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    def test_get_object_reads_and_closes_body(self, client, mock_s3):
        """Test downloading an object into memory."""
        body = MagicMock()
        body.read.return_value = b"content"
        mock_s3.get_object.return_value = {
            "Body": body,
            "ContentType": "text/plain",
            "ETag": '"e"',
            "ResponseMetadata": {"HTTPStatusCode": 200},
        }

        stored = client.get_object(bucket="test-bucket", object_key="docs/a.txt")

        assert stored.body == b"content"
        assert stored.size_bytes == 7
        body.close.assert_called_once()

    def test_get_object_no_such_key(self, client, mock_s3):
        """Test NoSuchKey maps to ObjectNotFoundError."""
        mock_s3.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

        with pytest.raises(ObjectNotFoundError, match="Failed to get object"):
            client.get_object(bucket="test-bucket", object_key="docs/a.txt")

    def test_put_object_with_encryption(self, client, mock_s3):
        """Test single-request upload passes encryption and content type."""
        mock_s3.put_object.return_value = {"ETag": '"etag"'}

        etag = client.put_object(
            bucket="test-bucket",
            object_key="docs/a.txt",
            body=b"hello",
            content_type="text/plain",
            server_side_encryption="AES256",
        )

        assert etag == '"etag"'
        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="docs/a.txt",
            Body=b"hello",
            ContentType="text/plain",
            ServerSideEncryption="AES256",
        )

    def test_put_object_exception(self, client, mock_s3):
        """Test error handling when put_object fails."""
        mock_s3.put_object.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to put object"):
            client.put_object(bucket="test-bucket", object_key="k", body=b"x")

    def test_init_multipart_upload(self, client, mock_s3):
        """Test initiating multipart upload."""
        mock_s3.create_multipart_upload.return_value = {
            "UploadId": "test-upload-id",
            "Bucket": "test-bucket",
            "Key": "test/key",
        }

        result = client.init_multipart_upload(
            bucket="test-bucket",
            object_key="test/key",
            content_type="application/pdf",
            server_side_encryption="AES256",
        )

        assert isinstance(result, MultipartUpload)
        assert result.upload_id == "test-upload-id"
        assert result.bucket == "test-bucket"
        assert result.object_key == "test/key"

        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="test/key",
            ContentType="application/pdf",
            ServerSideEncryption="AES256",
        )

    def test_init_multipart_upload_missing_upload_id(self, client, mock_s3):
        """Test error when S3 response missing UploadId."""
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(StorageError, match="S3 response missing UploadId"):
            client.init_multipart_upload(
                bucket="test-bucket",
                object_key="test/key",
            )

    def test_init_multipart_upload_exception(self, client, mock_s3):
        """Test error handling when create_multipart_upload fails."""
        mock_s3.create_multipart_upload.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to create multipart upload"):
            client.init_multipart_upload(
                bucket="test-bucket",
                object_key="test/key",
            )

    def test_upload_part(self, client, mock_s3):
        """Test uploading one part returns its ETag."""
        mock_s3.upload_part.return_value = {"ETag": '"part-etag"'}

        part = client.upload_part(
            bucket="test-bucket",
            object_key="test/key",
            upload_id="test-upload-id",
            part_number=3,
            body=b"chunk",
        )

        assert part == CompletedPart(part_number=3, etag='"part-etag"')
        mock_s3.upload_part.assert_called_once_with(
            Bucket="test-bucket",
            Key="test/key",
            UploadId="test-upload-id",
            PartNumber=3,
            Body=b"chunk",
        )

    def test_upload_part_missing_etag(self, client, mock_s3):
        """Test error when S3 response missing ETag."""
        mock_s3.upload_part.return_value = {}

        with pytest.raises(StorageError, match="missing ETag for part 1"):
            client.upload_part(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                part_number=1,
                body=b"chunk",
            )

    def test_upload_part_exception(self, client, mock_s3):
        """Test error handling when upload_part fails."""
        mock_s3.upload_part.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to upload part 2"):
            client.upload_part(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                part_number=2,
                body=b"chunk",
            )

    def test_complete_multipart_upload(self, client, mock_s3):
        """Test completing multipart upload."""
        parts = [
            CompletedPart(part_number=2, etag="etag2"),
            CompletedPart(part_number=1, etag="etag1"),
        ]

        client.complete_multipart_upload(
            bucket="test-bucket",
            object_key="test/key",
            upload_id="test-upload-id",
            parts=parts,
        )

        # Verify the parts are sorted by part_number
        call_args = mock_s3.complete_multipart_upload.call_args
        assert call_args[1]["Bucket"] == "test-bucket"
        assert call_args[1]["Key"] == "test/key"
        assert call_args[1]["UploadId"] == "test-upload-id"
        assert call_args[1]["MultipartUpload"]["Parts"] == [
            {"ETag": "etag1", "PartNumber": 1},
            {"ETag": "etag2", "PartNumber": 2},
        ]

    def test_complete_multipart_upload_exception(self, client, mock_s3):
        """Test error handling when complete_multipart_upload fails."""
        mock_s3.complete_multipart_upload.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to complete multipart upload"):
            client.complete_multipart_upload(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
                parts=[CompletedPart(part_number=1, etag="etag1")],
            )

    def test_abort_multipart_upload(self, client, mock_s3):
        """Test aborting multipart upload."""
        client.abort_multipart_upload(
            bucket="test-bucket",
            object_key="test/key",
            upload_id="test-upload-id",
        )

        mock_s3.abort_multipart_upload.assert_called_once_with(
            Bucket="test-bucket",
            Key="test/key",
            UploadId="test-upload-id",
        )

    def test_abort_multipart_upload_no_such_upload(self, client, mock_s3):
        """Test aborting an unknown upload maps to ObjectNotFoundError."""
        mock_s3.abort_multipart_upload.side_effect = _client_error(
            "NoSuchUpload", "AbortMultipartUpload"
        )

        with pytest.raises(ObjectNotFoundError, match="Failed to abort multipart upload"):
            client.abort_multipart_upload(
                bucket="test-bucket",
                object_key="test/key",
                upload_id="test-upload-id",
            )

    def test_presign_download(self, client, mock_s3):
        """Test presigning download URL."""
        mock_s3.generate_presigned_url.return_value = "https://download-url"

        url = client.presign_download(
            bucket="test-bucket",
            object_key="test/key",
            expires_in=10,
        )

        assert url == "https://download-url"
        mock_s3.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "test-bucket", "Key": "test/key"},
            ExpiresIn=10,
        )

    def test_presign_upload(self, client, mock_s3):
        """Test presigning upload URL."""
        mock_s3.generate_presigned_url.return_value = "https://upload-url"

        url = client.presign_upload(
            bucket="test-bucket",
            object_key="test/key",
            expires_in=10,
        )

        assert url == "https://upload-url"
        assert mock_s3.generate_presigned_url.call_args[0][0] == "put_object"

    def test_presign_download_exception(self, client, mock_s3):
        """Test error handling when presign_download fails."""
        mock_s3.generate_presigned_url.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to generate presigned URL"):
            client.presign_download(
                bucket="test-bucket",
                object_key="test/key",
                expires_in=10,
            )

    def test_presign_upload_empty_url(self, client, mock_s3):
        """Test error when presigned URL is empty."""
        mock_s3.generate_presigned_url.return_value = ""

        with pytest.raises(StorageError, match="Generated presigned URL is empty"):
            client.presign_upload(
                bucket="test-bucket",
                object_key="test/key",
                expires_in=10,
            )

    def test_delete_object(self, client, mock_s3):
        """Test deleting an object returns the store status."""
        mock_s3.delete_object.return_value = {
            "ResponseMetadata": {"HTTPStatusCode": 204}
        }

        status = client.delete_object(bucket="test-bucket", object_key="test/key")

        assert status == 204
        mock_s3.delete_object.assert_called_once_with(
            Bucket="test-bucket", Key="test/key"
        )

    def test_delete_object_exception(self, client, mock_s3):
        """Test error handling when delete_object fails."""
        mock_s3.delete_object.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to delete object"):
            client.delete_object(bucket="test-bucket", object_key="test/key")

    def test_delete_objects_batches_and_reports_failures(self, client, mock_s3):
        """Test bulk delete splits keys into batches and collects errors."""
        keys = [f"docs/{i}.txt" for i in range(DELETE_BATCH_SIZE + 2)]
        mock_s3.delete_objects.side_effect = [
            {"Errors": [{"Key": "docs/3.txt", "Code": "AccessDenied"}]},
            {},
        ]

        failed = client.delete_objects(bucket="test-bucket", object_keys=keys)

        assert failed == ["docs/3.txt"]
        assert mock_s3.delete_objects.call_count == 2
        second = mock_s3.delete_objects.call_args_list[1][1]
        assert second["Delete"]["Objects"] == [
            {"Key": keys[-2]},
            {"Key": keys[-1]},
        ]
        assert second["Delete"]["Quiet"] is True

    def test_check_bucket_unreachable(self, client, mock_s3):
        """Test a missing bucket maps to ObjectNotFoundError."""
        mock_s3.head_bucket.side_effect = _client_error("404", "HeadBucket")

        with pytest.raises(ObjectNotFoundError, match="not reachable"):
            client.check_bucket(bucket="test-bucket")


def test_build_client_disables_retries():
    """The boto3 client is configured for a single attempt."""
    settings = MagicMock()
    settings.S3_ENDPOINT_URL = "http://localhost:9000"
    settings.S3_REGION = "us-east-1"
    settings.S3_ACCESS_KEY_ID = "test-key"
    settings.S3_SECRET_ACCESS_KEY = "test-secret"
    settings.S3_USE_SSL = False
    settings.S3_ADDRESSING_STYLE = "path"
    settings.S3_CONNECT_TIMEOUT = 5
    settings.S3_READ_TIMEOUT = 30

    with patch("storage_gateway.infra.storage.s3_client.boto3.client") as factory:
        S3StorageClient(settings=settings)

    kwargs = factory.call_args[1]
    assert factory.call_args[0] == ("s3",)
    assert kwargs["endpoint_url"] == "http://localhost:9000"
    assert kwargs["use_ssl"] is False
    config = kwargs["config"]
    assert config.retries == {"max_attempts": 1, "mode": "standard"}
    assert config.s3 == {"addressing_style": "path"}
