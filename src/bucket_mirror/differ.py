"""Decide which local files need uploading and which remote keys are stale."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional

from bucket_mirror.scanner import LocalFile

# Hash record: key -> hex digest, or None when the digest is unknown
HashRecord = Dict[str, Optional[str]]


@dataclass(frozen=True)
class SyncPlan:
    """Derived plan for one run."""

    to_upload: FrozenSet[LocalFile] = field(default_factory=frozenset)
    keys_to_keep: FrozenSet[str] = field(default_factory=frozenset)
    keys_to_delete: FrozenSet[str] = field(default_factory=frozenset)


def needs_upload(local_file: LocalFile, hash_record: HashRecord) -> bool:
    """True if the key is unrecorded, recorded as unknown, or its digest changed."""
    recorded = hash_record.get(local_file.key)
    return recorded is None or recorded != local_file.digest


def plan(local_files: Iterable[LocalFile], hash_record: HashRecord) -> SyncPlan:
    """
    Partition local files into uploads and the set of keys to keep.

    Every local key is kept, changed or not, so unchanged files are never
    purge candidates.
    """
    local_files = list(local_files)
    return SyncPlan(
        to_upload=frozenset(f for f in local_files if needs_upload(f, hash_record)),
        keys_to_keep=frozenset(f.key for f in local_files),
    )


def stale_keys(remote_keys: Iterable[str], keys_to_keep: Iterable[str]) -> FrozenSet[str]:
    """Remote keys with no local counterpart."""
    return frozenset(remote_keys) - frozenset(keys_to_keep)


def records_for(local_files: Iterable[LocalFile]) -> HashRecord:
    """Hash record describing exactly the given local files."""
    return {f.key: f.digest for f in local_files}
