"""Streaming SHA256 digests for local files."""

import hashlib
from pathlib import Path


class ChecksumCalculator:
    """Calculate content digests without loading whole files into memory."""

    def __init__(self, chunk_size: int = 8192):
        self.chunk_size = chunk_size

    def calculate_sha256(self, file_path: Path) -> str:
        """
        Calculate the hex SHA256 digest of a file.

        Args:
            file_path: File to hash

        Returns:
            Lowercase hex digest (64 characters)
        """
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b""):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()
