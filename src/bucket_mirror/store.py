"""Object store capability and its boto3-backed S3 implementation."""

import logging
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Protocol

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from bucket_mirror.config import Config
from bucket_mirror.exceptions import (
    StoreDeleteError,
    StoreListError,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

# Hard limit of the S3 DeleteObjects API
MAX_DELETE_BATCH = 1000

# Metadata field holding the content digest of an uploaded object
HASH_METADATA_KEY = "hash"


@dataclass
class ListPage:
    """One page of a bucket listing."""

    keys: List[str] = field(default_factory=list)
    is_truncated: bool = False


class ObjectStore(Protocol):
    """Operations the sync engine needs from an object store."""

    def list_objects(self, bucket: str, marker: Optional[str] = None) -> ListPage:
        ...

    def head_object(self, bucket: str, key: str) -> Dict[str, str]:
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        content_type: str,
        cache_control: str,
        metadata: Dict[str, str],
    ) -> None:
        ...

    def delete_objects(self, bucket: str, keys: List[str]) -> None:
        ...


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message") or str(error)
    return str(error)


class S3ObjectStore:
    """ObjectStore backed by a boto3 S3 client."""

    def __init__(self, config: Config, client=None):
        """
        Initialize the store.

        Args:
            config: Configuration holding credentials and endpoint options
            client: Pre-built S3 client; created lazily from ``config`` if omitted
        """
        self.config = config
        self._s3_client = client
        self._client_lock = threading.Lock()

    @property
    def s3_client(self):
        """Get S3 client, creating it lazily with current config."""
        with self._client_lock:
            if self._s3_client is None:
                session = boto3.Session(**self.config.get_aws_session_kwargs())
                self._s3_client = session.client("s3", **self.config.get_s3_client_kwargs())
        return self._s3_client

    def list_objects(self, bucket: str, marker: Optional[str] = None) -> ListPage:
        params = {"Bucket": bucket}
        if marker is not None:
            params["Marker"] = marker
        try:
            response = self.s3_client.list_objects(**params)
        except (ClientError, BotoCoreError) as e:
            raise StoreListError(
                f"Couldn't list objects in bucket: {_error_message(e)}"
            ) from e

        keys = [obj["Key"] for obj in response.get("Contents", [])]
        logger.debug(f"Listed {len(keys)} key(s) after marker {marker!r}")
        return ListPage(keys=keys, is_truncated=bool(response.get("IsTruncated", False)))

    def head_object(self, bucket: str, key: str) -> Dict[str, str]:
        try:
            response = self.s3_client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StoreReadError(
                f"Couldn't get hash of object with key {key}: {_error_message(e)}",
                key=key,
            ) from e
        return response.get("Metadata", {})

    def put_object(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        content_type: str,
        cache_control: str,
        metadata: Dict[str, str],
    ) -> None:
        extra_args = {
            "ACL": "private",
            "ContentType": content_type,
            "CacheControl": cache_control,
            "Metadata": metadata,
        }
        try:
            # Managed transfer streams the body and switches to multipart for large files
            self.s3_client.upload_fileobj(body, bucket, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise StoreWriteError(
                f"Couldn't upload object with key {key}: {_error_message(e)}",
                key=key,
            ) from e

    def delete_objects(self, bucket: str, keys: List[str]) -> None:
        if len(keys) > MAX_DELETE_BATCH:
            raise ValueError(
                f"Cannot delete {len(keys)} objects in one call (limit {MAX_DELETE_BATCH})"
            )
        try:
            response = self.s3_client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreDeleteError(
                f"Couldn't delete stale objects in bucket: {_error_message(e)}"
            ) from e

        errors = response.get("Errors") or []
        if errors:
            first = errors[0]
            raise StoreDeleteError(
                f"Couldn't delete stale objects in bucket: {len(errors)} key(s) failed, "
                f"first {first.get('Key')}: {first.get('Message', first.get('Code'))}",
                key=first.get("Key"),
            )
