"""Uploading local files with content-type, cache and digest metadata."""

import logging
import mimetypes
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from bucket_mirror.config import DEFAULT_CONCURRENCY
from bucket_mirror.exceptions import LocalIOError, StoreWriteError
from bucket_mirror.scanner import LocalFile
from bucket_mirror.store import HASH_METADATA_KEY, ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

NO_CACHE = "no-cache"
LONG_CACHE = "max-age=31536000"

# Content types served fresh on every request
NO_CACHE_PREFIXES = ("text/html", "application/json")

# Non text/* types that still get a charset parameter
CHARSET_TYPES = (
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
)


def resolve_content_type(key: str) -> str:
    """Content type for ``key`` by extension, with a utf-8 charset for text."""
    content_type, _ = mimetypes.guess_type(key, strict=False)
    if content_type is None:
        return DEFAULT_CONTENT_TYPE
    if content_type.startswith("text/") or content_type in CHARSET_TYPES:
        return f"{content_type}; charset=utf-8"
    return content_type


def cache_control_for(content_type: str) -> str:
    """``no-cache`` for HTML and JSON, one year for everything else."""
    if content_type.startswith(NO_CACHE_PREFIXES):
        return NO_CACHE
    return LONG_CACHE


class Uploader:
    """Concurrency-bounded uploads to one bucket."""

    def __init__(
        self,
        store: ObjectStore,
        bucket: str,
        root: Path,
        limiter: Optional[threading.Semaphore] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """
        Initialize the uploader.

        Args:
            store: Object store to write to
            bucket: Target bucket
            root: Local directory keys are relative to
            limiter: Semaphore shared with the scanner; private one if omitted
            concurrency: Number of upload worker threads
        """
        self.store = store
        self.bucket = bucket
        self.root = Path(root)
        self.concurrency = concurrency
        self.limiter = limiter or threading.BoundedSemaphore(concurrency)

    def upload(self, key: str, digest: str) -> None:
        """
        Upload one file and tag it with its digest.

        Raises:
            StoreWriteError: If the store rejects the upload
            LocalIOError: If the local file can't be opened
        """
        file_path = self.root / key
        content_type = resolve_content_type(key)
        cache_control = cache_control_for(content_type)

        with self.limiter:
            try:
                body = open(file_path, "rb")
            except OSError as e:
                raise LocalIOError(f"Couldn't open {file_path}: {e}", path=file_path) from e
            with body:
                self.store.put_object(
                    self.bucket,
                    key,
                    body,
                    content_type=content_type,
                    cache_control=cache_control,
                    metadata={HASH_METADATA_KEY: digest},
                )
        logger.info(f"Upload: {key}")

    def upload_all(
        self,
        files: Iterable[LocalFile],
        on_uploaded: Optional[Callable[[str], None]] = None,
    ) -> List[str]:
        """
        Upload every file, waiting for all uploads to settle.

        Completed uploads are kept even if others fail; the first failure
        (in key order) is re-raised once everything has finished.

        Args:
            files: Files to upload
            on_uploaded: Called with each key as its upload completes

        Returns:
            Sorted list of uploaded keys
        """
        files = sorted(files, key=lambda f: f.key)
        if not files:
            return []

        uploaded: List[str] = []
        errors = {}
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = {executor.submit(self.upload, f.key, f.digest): f.key for f in files}
            for future in as_completed(futures):
                key = futures[future]
                error = future.exception()
                if error is None:
                    uploaded.append(key)
                    if on_uploaded is not None:
                        on_uploaded(key)
                else:
                    logger.error(f"Upload failed: {key}: {error}")
                    errors[key] = error

        if errors:
            first_key = min(errors)
            error = errors[first_key]
            if isinstance(error, (StoreWriteError, LocalIOError)):
                raise error
            raise StoreWriteError(f"Couldn't upload object with key {first_key}: {error}", key=first_key) from error

        return sorted(uploaded)
