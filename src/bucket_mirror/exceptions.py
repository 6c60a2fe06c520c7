"""Error types raised by the sync engine."""

from pathlib import Path
from typing import Optional, Union


class BucketMirrorError(Exception):
    """Base class for all bucket-mirror errors."""


class ConfigError(BucketMirrorError):
    """Raised when configuration values are missing or invalid."""


class StoreError(BucketMirrorError):
    """Base class for failures talking to the object store."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class StoreListError(StoreError):
    """Listing objects in the bucket failed."""


class StoreReadError(StoreError):
    """Reading object metadata failed."""


class StoreWriteError(StoreError):
    """Uploading an object failed."""


class StoreDeleteError(StoreError):
    """Deleting a batch of objects failed."""


class LocalIOError(BucketMirrorError):
    """Scanning, statting or reading a local file failed."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = path


class StateCorruptError(BucketMirrorError):
    """The persisted hash state could not be parsed."""
