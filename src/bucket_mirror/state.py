"""Persistence of the key -> digest hash record.

The hash record is a single JSON object mapping each relative key to the
hex digest it was last uploaded with, or ``null`` when the digest is not
known. It is the only state the engine keeps between runs.
"""

import json
import logging
import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional

from bucket_mirror.config import DEFAULT_CONCURRENCY
from bucket_mirror.differ import HashRecord
from bucket_mirror.exceptions import LocalIOError, StateCorruptError
from bucket_mirror.filters import ACCEPT_ALL, KeyFilter
from bucket_mirror.lister import RemoteLister
from bucket_mirror.store import HASH_METADATA_KEY

logger = logging.getLogger(__name__)


def parse_hash_record(text: str) -> HashRecord:
    """
    Parse the serialized hash record.

    Raises:
        StateCorruptError: If the text is not a JSON object of string or null values
    """
    try:
        data: Any = json.loads(text)
    except ValueError as e:
        raise StateCorruptError(f"State file is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StateCorruptError("State file must contain a JSON object")
    for key, value in data.items():
        if value is not None and not isinstance(value, str):
            raise StateCorruptError(f"Invalid digest for {key!r}: {value!r}")
    return data


class HashStateStore:
    """Loads and atomically rewrites the hash record file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> HashRecord:
        """
        Read the hash record.

        A missing file yields an empty record. A corrupt file is logged and
        also yields an empty record, which makes every local file upload.
        """
        if not self.path.exists():
            logger.debug(f"No state file at {self.path}")
            return {}

        try:
            text = self.path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Ignoring corrupt state file {self.path}: {e}")
            return {}
        except OSError as e:
            raise LocalIOError(f"Couldn't read state file {self.path}: {e}", path=self.path) from e

        try:
            records = parse_hash_record(text)
        except StateCorruptError as e:
            logger.warning(f"Ignoring corrupt state file {self.path}: {e}")
            return {}

        logger.debug(f"Loaded {len(records)} hash record(s) from {self.path}")
        return records

    def seed_from_remote(
        self,
        lister: RemoteLister,
        key_filter: KeyFilter = ACCEPT_ALL,
        limiter: Optional[threading.Semaphore] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> HashRecord:
        """
        Build a hash record from the digests stored on existing objects.

        Used when no state file exists. Objects uploaded without digest
        metadata are recorded as unknown (``None``). Nothing is written to
        disk here; the record is persisted by ``save`` once the run succeeds.

        Raises:
            StoreListError: If listing the bucket fails
            StoreReadError: If fetching any object's metadata fails
        """
        keys = lister.list_all(key_filter)
        limiter = limiter or threading.BoundedSemaphore(concurrency)

        def fetch_digest(key: str) -> Optional[str]:
            with limiter:
                metadata = lister.store.head_object(lister.bucket, key)
            return metadata.get(HASH_METADATA_KEY) or None

        records: HashRecord = {}
        if keys:
            with ThreadPoolExecutor(max_workers=concurrency) as executor:
                # map re-raises the first failure in key order
                for key, digest in zip(keys, executor.map(fetch_digest, keys)):
                    records[key] = digest

        known = sum(1 for digest in records.values() if digest is not None)
        logger.info(f"Seeded state from {len(records)} remote object(s), {known} with a known hash")
        return records

    def save(self, records: HashRecord) -> None:
        """Atomically replace the state file with exactly ``records``."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(records, f, indent=2, sort_keys=True)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise LocalIOError(f"Couldn't write state file {self.path}: {e}", path=self.path) from e

        logger.debug(f"Saved {len(records)} hash record(s) to {self.path}")

    def clear(self) -> bool:
        """Remove the state file. Returns False if there was none."""
        if self.path.exists():
            try:
                self.path.unlink()
            except OSError as e:
                raise LocalIOError(f"Couldn't remove state file {self.path}: {e}", path=self.path) from e
            logger.debug(f"Cleared state file {self.path}")
            return True
        return False
