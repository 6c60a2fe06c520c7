"""Sync engine that mirrors a local directory into an S3 bucket."""

import dataclasses
import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from bucket_mirror.config import Config
from bucket_mirror.differ import SyncPlan, plan, records_for, stale_keys
from bucket_mirror.exceptions import ConfigError
from bucket_mirror.filters import KeyFilter
from bucket_mirror.lister import RemoteLister
from bucket_mirror.purger import Purger
from bucket_mirror.scanner import LocalFile, TreeScanner
from bucket_mirror.state import HashStateStore
from bucket_mirror.store import ObjectStore, S3ObjectStore
from bucket_mirror.uploader import Uploader, cache_control_for, resolve_content_type

logger = logging.getLogger(__name__)


class MirrorSync:
    """One-way, idempotent publish of a directory tree to a bucket."""

    def __init__(
        self,
        config: Config,
        store: Optional[ObjectStore] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize the sync engine.

        Args:
            config: Validated configuration
            store: Object store; an S3ObjectStore is built lazily from ``config`` if omitted
            console: Console for plan output
        """
        self.config = config
        self.console = console or Console()
        self._store = store

    @property
    def store(self) -> ObjectStore:
        """Get the object store, creating it lazily with current config."""
        if self._store is None:
            self._store = S3ObjectStore(self.config)
        return self._store

    def sync(self, dry_run: Optional[bool] = None, reset_state: bool = False) -> Dict:
        """
        Run one sync: seed or load state, scan, upload, persist state, purge.

        The state file is written only after every upload succeeded, and
        purging starts only after that. Any store or local I/O error aborts
        the run; work already done remotely is not rolled back.

        Args:
            dry_run: Report the plan without changing anything (defaults to config)
            reset_state: Delete the existing state file and re-seed from the bucket

        Returns:
            Dictionary with sync results
        """
        if dry_run is None:
            dry_run = self.config.sync.dry_run

        bucket = self.config.s3.bucket_name
        if not bucket:
            raise ConfigError("S3 bucket not configured")
        key_filter = self._build_key_filter()

        concurrency = self.config.sync.concurrency
        # Shared by scanning and uploading to cap open files and sockets
        limiter = threading.BoundedSemaphore(concurrency)

        root = Path(self.config.sync.directory)
        state_store = HashStateStore(self.config.resolved_hash_file())
        lister = RemoteLister(self.store, bucket)

        # Step 1: Seed from remote metadata on first run, otherwise load state
        if reset_state and not dry_run:
            state_store.clear()
        seeded = reset_state or not state_store.exists()
        if seeded:
            records = state_store.seed_from_remote(
                lister, key_filter, limiter=limiter, concurrency=concurrency
            )
        else:
            records = state_store.load()

        # Step 2: Scan and diff
        scanner = TreeScanner(
            limiter=limiter,
            concurrency=concurrency,
            key_filter=key_filter,
            exclude=[state_store.path],
        )
        local_files = scanner.scan(root)
        sync_plan = plan(local_files, records)
        logger.debug(
            f"{len(local_files)} local file(s), {len(sync_plan.to_upload)} to upload"
        )

        if dry_run:
            if self.config.sync.purge:
                remote_keys = lister.list_all(key_filter)
                sync_plan = dataclasses.replace(
                    sync_plan, keys_to_delete=stale_keys(remote_keys, sync_plan.keys_to_keep)
                )
            self._display_plan(sync_plan)
            return self._result(local_files, sync_plan, [], [], seeded, dry_run=True)

        # Step 3: Upload, all or abort
        uploader = Uploader(
            self.store, bucket, root.resolve(), limiter=limiter, concurrency=concurrency
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            task = progress.add_task("Uploading", total=len(sync_plan.to_upload))
            uploaded = uploader.upload_all(
                sync_plan.to_upload, on_uploaded=lambda key: progress.advance(task)
            )

        # Step 4: Persist state for exactly the current local key set
        state_store.save(records_for(local_files))

        # Step 5: Purge stale objects
        deleted: List[str] = []
        if self.config.sync.purge:
            remote_keys = lister.list_all(key_filter)
            sync_plan = dataclasses.replace(
                sync_plan, keys_to_delete=stale_keys(remote_keys, sync_plan.keys_to_keep)
            )
            purger = Purger(self.store, bucket, concurrency=concurrency)
            deleted = purger.purge(sync_plan.keys_to_delete)

        return self._result(local_files, sync_plan, uploaded, deleted, seeded, dry_run=False)

    def _build_key_filter(self) -> KeyFilter:
        try:
            return KeyFilter.from_pattern(self.config.sync.include)
        except re.error as e:
            raise ConfigError(f"Invalid include pattern {self.config.sync.include!r}: {e}") from e

    def _display_plan(self, sync_plan: SyncPlan) -> None:
        """Print the planned uploads and deletions."""
        if not sync_plan.to_upload and not sync_plan.keys_to_delete:
            self.console.print("[green]Everything is up to date[/green]")
            return

        table = Table(title="Sync plan")
        table.add_column("Action")
        table.add_column("Key")
        table.add_column("Content-Type")
        table.add_column("Cache-Control")

        for local_file in sorted(sync_plan.to_upload, key=lambda f: f.key):
            content_type = resolve_content_type(local_file.key)
            table.add_row(
                "[blue]upload[/blue]",
                local_file.key,
                content_type,
                cache_control_for(content_type),
            )
        for key in sorted(sync_plan.keys_to_delete):
            table.add_row("[red]delete[/red]", key, "", "")

        self.console.print(table)

    def _result(
        self,
        local_files: List[LocalFile],
        sync_plan: SyncPlan,
        uploaded: List[str],
        deleted: List[str],
        seeded: bool,
        dry_run: bool,
    ) -> Dict:
        return {
            "files_uploaded": len(uploaded),
            "files_unchanged": len(local_files) - len(sync_plan.to_upload),
            "files_deleted": len(deleted),
            "uploaded": uploaded,
            "deleted": deleted,
            "to_upload": sorted(f.key for f in sync_plan.to_upload),
            "to_delete": sorted(sync_plan.keys_to_delete),
            "seeded": seeded,
            "dry_run": dry_run,
        }
