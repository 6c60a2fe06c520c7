"""Deletion of remote objects that no longer exist locally."""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Iterable, Iterator, List

from bucket_mirror.config import DEFAULT_CONCURRENCY
from bucket_mirror.exceptions import StoreDeleteError
from bucket_mirror.store import MAX_DELETE_BATCH, ObjectStore

logger = logging.getLogger(__name__)


def chunked(keys: List[str], size: int = MAX_DELETE_BATCH) -> Iterator[List[str]]:
    """Split ``keys`` into consecutive chunks of at most ``size``."""
    for start in range(0, len(keys), size):
        yield keys[start:start + size]


class Purger:
    """Batch-deletes stale keys from one bucket."""

    def __init__(self, store: ObjectStore, bucket: str, concurrency: int = DEFAULT_CONCURRENCY):
        self.store = store
        self.bucket = bucket
        self.concurrency = concurrency

    def purge(self, keys_to_delete: Iterable[str]) -> List[str]:
        """
        Delete ``keys_to_delete`` in batches of at most 1000 keys.

        Keys are sorted so batches are deterministic. Every key is logged
        before any batch is sent. Batches run concurrently; on the first
        failure, batches not yet started are cancelled and the error is
        raised. Batches already deleted stay deleted.

        Returns:
            Sorted list of deleted keys
        """
        keys = sorted(set(keys_to_delete))
        if not keys:
            return []

        for key in keys:
            logger.info(f"Delete: {key}")

        batches = list(chunked(keys))
        aborted = threading.Event()

        def delete_batch(batch: List[str]) -> None:
            if aborted.is_set():
                return
            try:
                self.store.delete_objects(self.bucket, batch)
            except Exception:
                aborted.set()
                raise

        executor = ThreadPoolExecutor(max_workers=self.concurrency)
        try:
            futures = [executor.submit(delete_batch, batch) for batch in batches]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    error = future.exception()
                    if isinstance(error, StoreDeleteError):
                        raise error
                    raise StoreDeleteError(f"Couldn't delete stale objects in bucket: {error}") from error
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        logger.debug(f"Deleted {len(keys)} object(s) in {len(batches)} batch(es)")
        return keys
