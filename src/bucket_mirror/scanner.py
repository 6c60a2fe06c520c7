"""Local directory scanning and hashing."""

import logging
import os
import stat
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple

from bucket_mirror.checksum import ChecksumCalculator
from bucket_mirror.config import DEFAULT_CONCURRENCY
from bucket_mirror.exceptions import LocalIOError
from bucket_mirror.filters import ACCEPT_ALL, KeyFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFile:
    """A local file and its content digest."""

    key: str
    """Path relative to the scanned root, always with forward slashes"""

    digest: str
    """Hex SHA256 of the file content"""

    path: Path = field(compare=False)
    """Absolute path to the file"""


class TreeScanner:
    """Recursively enumerate and hash every regular file under a root.

    Directories are walked with an explicit worklist. Each blocking I/O
    step (listing a directory, stat, hashing a file) acquires the shared
    limiter, so hashing competes with uploads for the same slots.
    Unreadable entries and broken or looping symlinks raise LocalIOError
    instead of being skipped.
    """

    def __init__(
        self,
        limiter: Optional[threading.Semaphore] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        key_filter: KeyFilter = ACCEPT_ALL,
        checksum_calculator: Optional[ChecksumCalculator] = None,
        exclude: Iterable[Path] = (),
    ):
        """
        Initialize the scanner.

        Args:
            limiter: Semaphore bounding concurrent I/O; a private one is created if omitted
            concurrency: Number of hashing worker threads
            key_filter: Include filter applied to relative keys before hashing
            checksum_calculator: Digest implementation
            exclude: Absolute paths never reported (e.g. the state file)
        """
        self.concurrency = concurrency
        self.limiter = limiter or threading.BoundedSemaphore(concurrency)
        self.key_filter = key_filter
        self.checksum_calculator = checksum_calculator or ChecksumCalculator()
        self.exclude: Set[Path] = {Path(p).resolve() for p in exclude}

    def scan(self, root: Path) -> List[LocalFile]:
        """
        Scan ``root`` and return a LocalFile for every accepted regular file.

        Order of the result is unspecified.
        """
        root = Path(root).resolve()
        candidates = self._collect(root)
        logger.debug(f"Hashing {len(candidates)} file(s) under {root}")
        return self._hash_all(candidates)

    def _collect(self, root: Path) -> List[Tuple[str, Path]]:
        """Walk the tree and return (key, absolute path) pairs to hash."""
        candidates: List[Tuple[str, Path]] = []
        root_stat = self._stat(root)
        if not stat.S_ISDIR(root_stat.st_mode):
            raise LocalIOError(f"Not a directory: {root}", path=root)

        # A directory is a loop only if it is one of its own ancestors
        worklist: List[Tuple[Path, FrozenSet[Tuple[int, int]]]] = [
            (root, frozenset({(root_stat.st_dev, root_stat.st_ino)}))
        ]
        while worklist:
            directory, ancestors = worklist.pop()
            for entry_path in self._list_dir(directory):
                entry_stat = self._stat(entry_path)
                if stat.S_ISDIR(entry_stat.st_mode):
                    identity = (entry_stat.st_dev, entry_stat.st_ino)
                    if identity in ancestors:
                        raise LocalIOError(
                            f"Symlink loop: {entry_path} points back to a parent directory",
                            path=entry_path,
                        )
                    worklist.append((entry_path, ancestors | {identity}))
                elif stat.S_ISREG(entry_stat.st_mode):
                    if entry_path.resolve() in self.exclude:
                        continue
                    key = entry_path.relative_to(root).as_posix()
                    if self.key_filter(key):
                        candidates.append((key, entry_path))
                else:
                    logger.debug(f"Skipping non-regular file {entry_path}")
        return candidates

    def _list_dir(self, directory: Path) -> List[Path]:
        with self.limiter:
            try:
                with os.scandir(directory) as it:
                    return [directory / entry.name for entry in it]
            except OSError as e:
                raise LocalIOError(f"Couldn't read directory {directory}: {e}", path=directory) from e

    def _stat(self, path: Path) -> os.stat_result:
        with self.limiter:
            try:
                return path.stat()
            except OSError as e:
                raise LocalIOError(f"Couldn't stat {path}: {e}", path=path) from e

    def _hash_one(self, key: str, path: Path) -> LocalFile:
        with self.limiter:
            try:
                digest = self.checksum_calculator.calculate_sha256(path)
            except OSError as e:
                raise LocalIOError(f"Couldn't read {path}: {e}", path=path) from e
        return LocalFile(key=key, digest=digest, path=path)

    def _hash_all(self, candidates: List[Tuple[str, Path]]) -> List[LocalFile]:
        if not candidates:
            return []

        executor = ThreadPoolExecutor(max_workers=self.concurrency)
        try:
            futures = [executor.submit(self._hash_one, key, path) for key, path in candidates]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    raise error
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
