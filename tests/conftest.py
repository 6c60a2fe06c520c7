"""Shared fixtures for bucket-mirror tests."""

import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from bucket_mirror.config import Config, S3Config, SyncConfig
from bucket_mirror.exceptions import StoreDeleteError, StoreWriteError
from bucket_mirror.store import ListPage


class FakeObjectStore:
    """In-memory ObjectStore that records every call."""

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self.objects: Dict[str, Dict] = {}
        self.list_calls: List[Optional[str]] = []
        self.head_calls: List[str] = []
        self.put_calls: List[Dict] = []
        self.delete_calls: List[List[str]] = []
        self.fail_put_keys = set()
        self.fail_delete = False
        self._lock = threading.Lock()

    def add(self, key: str, body: bytes = b"", metadata: Optional[Dict[str, str]] = None) -> None:
        self.objects[key] = {"body": body, "metadata": metadata or {}}

    def list_objects(self, bucket: str, marker: Optional[str] = None) -> ListPage:
        self.list_calls.append(marker)
        keys = sorted(self.objects)
        if marker is not None:
            keys = [key for key in keys if key > marker]
        page = keys[:self.page_size]
        return ListPage(keys=page, is_truncated=len(keys) > self.page_size)

    def head_object(self, bucket: str, key: str) -> Dict[str, str]:
        self.head_calls.append(key)
        return dict(self.objects[key]["metadata"])

    def put_object(self, bucket, key, body, content_type, cache_control, metadata) -> None:
        if key in self.fail_put_keys:
            raise StoreWriteError(f"Couldn't upload object with key {key}: Access Denied", key=key)
        data = body.read()
        with self._lock:
            self.put_calls.append(
                {
                    "key": key,
                    "content_type": content_type,
                    "cache_control": cache_control,
                    "metadata": dict(metadata),
                }
            )
            self.objects[key] = {"body": data, "metadata": dict(metadata)}

    def delete_objects(self, bucket: str, keys: List[str]) -> None:
        if self.fail_delete:
            raise StoreDeleteError("Couldn't delete stale objects in bucket: Access Denied")
        with self._lock:
            self.delete_calls.append(list(keys))
            for key in keys:
                self.objects.pop(key, None)

    @property
    def put_keys(self) -> List[str]:
        return sorted(call["key"] for call in self.put_calls)


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture
def site_dir(tmp_path):
    """A small local tree to publish."""
    root = tmp_path / "site"
    root.mkdir()
    (root / "a.txt").write_text("alpha")
    (root / "b.json").write_text('{"b": 1}')
    (root / "c.html").write_text("<html></html>")
    return root


@pytest.fixture
def make_config(tmp_path):
    """Build a Config pointing at a directory and a state file under tmp_path."""

    def _make(directory: Path, **sync_options) -> Config:
        sync_options.setdefault("hash_file", tmp_path / "s3-hashes.json")
        return Config(
            s3=S3Config(bucket_name="bucket-1"),
            sync=SyncConfig(directory=directory, **sync_options),
        )

    return _make
