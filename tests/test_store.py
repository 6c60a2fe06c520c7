"""Tests for the boto3-backed S3 store."""

import io
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError

from bucket_mirror.config import AWSConfig, Config, S3Config
from bucket_mirror.exceptions import (
    StoreDeleteError,
    StoreListError,
    StoreReadError,
    StoreWriteError,
)
from bucket_mirror.store import MAX_DELETE_BATCH, S3ObjectStore


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError(
        error_response={"Error": {"Code": code, "Message": f"{code} message"}},
        operation_name=operation,
    )


class TestS3ObjectStore:
    """Test S3ObjectStore against a mocked boto3 client."""

    def setup_method(self):
        """Set up test configuration."""
        self.config = Config(
            aws=AWSConfig(profile="test-profile", region="us-east-1"),
            s3=S3Config(bucket_name="test-bucket"),
        )
        self.client = Mock()
        self.store = S3ObjectStore(self.config, client=self.client)

    @patch("boto3.Session")
    def test_s3_client_lazy_initialization(self, mock_session):
        """Test that the S3 client is created lazily and cached."""
        mock_client = Mock()
        mock_session.return_value.client.return_value = mock_client

        store = S3ObjectStore(self.config)

        assert store._s3_client is None
        assert store.s3_client is mock_client
        assert store.s3_client is mock_client
        mock_session.assert_called_once_with(profile_name="test-profile", region_name="us-east-1")
        args, kwargs = mock_session.return_value.client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "us-east-1"

    @patch("boto3.Session")
    def test_s3_client_built_once_across_threads(self, mock_session):
        def slow_session(**kwargs):
            time.sleep(0.05)
            return Mock()

        mock_session.side_effect = slow_session
        store = S3ObjectStore(self.config)

        with ThreadPoolExecutor(max_workers=10) as executor:
            clients = list(executor.map(lambda _: store.s3_client, range(10)))

        assert mock_session.call_count == 1
        assert all(client is clients[0] for client in clients)

    def test_list_objects_first_page(self):
        self.client.list_objects.return_value = {
            "Contents": [{"Key": "a.txt"}, {"Key": "b.txt"}],
            "IsTruncated": True,
        }

        page = self.store.list_objects("test-bucket")

        assert page.keys == ["a.txt", "b.txt"]
        assert page.is_truncated is True
        self.client.list_objects.assert_called_once_with(Bucket="test-bucket")

    def test_list_objects_with_marker(self):
        self.client.list_objects.return_value = {"IsTruncated": False}

        page = self.store.list_objects("test-bucket", "b.txt")

        assert page.keys == []
        assert page.is_truncated is False
        self.client.list_objects.assert_called_once_with(Bucket="test-bucket", Marker="b.txt")

    def test_list_objects_error(self):
        self.client.list_objects.side_effect = _client_error("NoSuchBucket", "ListObjects")

        with pytest.raises(StoreListError) as exc_info:
            self.store.list_objects("test-bucket")

        assert "NoSuchBucket message" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_list_objects_connection_error(self):
        self.client.list_objects.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")

        with pytest.raises(StoreListError):
            self.store.list_objects("test-bucket")

    def test_head_object_returns_metadata(self):
        self.client.head_object.return_value = {"ContentLength": 3, "Metadata": {"hash": "abc"}}

        assert self.store.head_object("test-bucket", "a.txt") == {"hash": "abc"}
        self.client.head_object.assert_called_once_with(Bucket="test-bucket", Key="a.txt")

    def test_head_object_without_metadata(self):
        self.client.head_object.return_value = {"ContentLength": 3}

        assert self.store.head_object("test-bucket", "a.txt") == {}

    def test_head_object_error(self):
        self.client.head_object.side_effect = _client_error("403", "HeadObject")

        with pytest.raises(StoreReadError) as exc_info:
            self.store.head_object("test-bucket", "a.txt")

        assert exc_info.value.key == "a.txt"

    def test_put_object_sends_headers(self):
        body = io.BytesIO(b"hello")

        self.store.put_object(
            "test-bucket",
            "a.txt",
            body,
            content_type="text/plain; charset=utf-8",
            cache_control="max-age=31536000",
            metadata={"hash": "abc"},
        )

        self.client.upload_fileobj.assert_called_once_with(
            body,
            "test-bucket",
            "a.txt",
            ExtraArgs={
                "ACL": "private",
                "ContentType": "text/plain; charset=utf-8",
                "CacheControl": "max-age=31536000",
                "Metadata": {"hash": "abc"},
            },
        )

    def test_put_object_error(self):
        self.client.upload_fileobj.side_effect = S3UploadFailedError("Access Denied")

        with pytest.raises(StoreWriteError) as exc_info:
            self.store.put_object("test-bucket", "a.txt", io.BytesIO(b""), "text/plain", "no-cache", {})

        assert exc_info.value.key == "a.txt"

    def test_delete_objects(self):
        self.client.delete_objects.return_value = {}

        self.store.delete_objects("test-bucket", ["a.txt", "b.txt"])

        self.client.delete_objects.assert_called_once_with(
            Bucket="test-bucket",
            Delete={"Objects": [{"Key": "a.txt"}, {"Key": "b.txt"}], "Quiet": True},
        )

    def test_delete_objects_rejects_oversized_batch(self):
        with pytest.raises(ValueError):
            self.store.delete_objects("test-bucket", [f"k{i}" for i in range(MAX_DELETE_BATCH + 1)])

        self.client.delete_objects.assert_not_called()

    def test_delete_objects_client_error(self):
        self.client.delete_objects.side_effect = _client_error("AccessDenied", "DeleteObjects")

        with pytest.raises(StoreDeleteError):
            self.store.delete_objects("test-bucket", ["a.txt"])

    def test_delete_objects_partial_errors(self):
        self.client.delete_objects.return_value = {
            "Errors": [{"Key": "b.txt", "Code": "AccessDenied", "Message": "Access Denied"}]
        }

        with pytest.raises(StoreDeleteError) as exc_info:
            self.store.delete_objects("test-bucket", ["a.txt", "b.txt"])

        assert exc_info.value.key == "b.txt"
        assert "Access Denied" in str(exc_info.value)
