"""Tests for change detection."""

from pathlib import Path

from bucket_mirror.differ import plan, records_for, stale_keys
from bucket_mirror.scanner import LocalFile


def _file(key: str, digest: str) -> LocalFile:
    return LocalFile(key=key, digest=digest, path=Path("/site") / key)


class TestPlan:
    """Test upload planning against the hash record."""

    def test_new_files_are_uploaded(self):
        files = [_file("a.txt", "aaa"), _file("b.txt", "bbb")]

        sync_plan = plan(files, {})

        assert {f.key for f in sync_plan.to_upload} == {"a.txt", "b.txt"}
        assert sync_plan.keys_to_keep == {"a.txt", "b.txt"}
        assert sync_plan.keys_to_delete == frozenset()

    def test_unchanged_files_are_kept_not_uploaded(self):
        files = [_file("a.txt", "aaa"), _file("b.txt", "bbb")]

        sync_plan = plan(files, {"a.txt": "aaa", "b.txt": "bbb"})

        assert sync_plan.to_upload == frozenset()
        assert sync_plan.keys_to_keep == {"a.txt", "b.txt"}

    def test_changed_digest_is_uploaded(self):
        files = [_file("a.txt", "new")]

        sync_plan = plan(files, {"a.txt": "old"})

        assert [f.key for f in sync_plan.to_upload] == ["a.txt"]

    def test_unknown_marker_is_uploaded(self):
        files = [_file("a.txt", "aaa")]

        sync_plan = plan(files, {"a.txt": None})

        assert [f.key for f in sync_plan.to_upload] == ["a.txt"]

    def test_records_for_other_keys_are_ignored(self):
        files = [_file("a.txt", "aaa")]

        sync_plan = plan(files, {"a.txt": "aaa", "gone.txt": "zzz"})

        assert sync_plan.to_upload == frozenset()
        assert sync_plan.keys_to_keep == {"a.txt"}

    def test_plan_is_deterministic(self):
        files = [_file("a.txt", "aaa"), _file("b.txt", "bbb")]
        record = {"a.txt": "aaa"}

        assert plan(files, record) == plan(list(reversed(files)), record)


class TestStaleKeys:
    """Test purge candidate computation."""

    def test_subtracts_kept_keys(self):
        stale = stale_keys(["a.txt", "b.txt", "stale.txt"], ["a.txt", "b.txt"])

        assert stale == {"stale.txt"}

    def test_nothing_stale(self):
        assert stale_keys(["a.txt"], ["a.txt", "b.txt"]) == frozenset()


def test_records_for_maps_keys_to_digests():
    files = [_file("a.txt", "aaa"), _file("dir/b.txt", "bbb")]

    assert records_for(files) == {"a.txt": "aaa", "dir/b.txt": "bbb"}
