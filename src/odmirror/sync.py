#!/usr/bin/env python3
"""Mirrors a folder tree from a source account to a destination account."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .comparator import SyncAction, compare
from .folders import FolderEnsurer
from .models import RemoteItem, SyncJob
from .onedrive_client import OneDriveClient
from .path_utils import join_remote, normalize_remote_path
from .retry import RetryPolicy
from .upload import UploadSessionManager
from .utils import format_size
from .workers import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one mirror run."""

    folders: int = 0
    already_synced: int = 0
    enqueued: int = 0
    uploaded: int = 0
    failed: int = 0
    failed_jobs: List[SyncJob] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class MirrorSync:
    """Walks the source tree and queues every file the destination lacks."""

    def __init__(self, source: OneDriveClient, destination: OneDriveClient,
                 upload_manager: Optional[UploadSessionManager] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 queue_size: int = 1):
        """Initialize mirror sync.

        Args:
            source: Client for the account being copied
            destination: Client for the account receiving the copy
            upload_manager: Performs single-file uploads (default built on source)
            retry_policy: Per-file retry behaviour of the workers
            queue_size: Jobs allowed to wait for a free worker
        """
        self.source = source
        self.destination = destination
        self.upload_manager = upload_manager or UploadSessionManager(source)
        self.retry_policy = retry_policy or RetryPolicy()
        self.queue_size = queue_size
        self.ensurer = FolderEnsurer(destination)

    def sync(self, source_path: str, dest_path: str, workers: int = 5) -> SyncReport:
        """Mirror ``source_path`` into ``dest_path`` with its own worker pool.

        The pool is only started once the source turned out to hold
        something. Returns only after every queued upload finished or was
        given up.

        Args:
            source_path: Folder on the source account
            dest_path: Folder on the destination account
            workers: Number of concurrent uploads

        Returns:
            SyncReport for the whole tree

        Raises:
            FolderCreationError: If a destination folder could not be ensured
        """
        report = SyncReport()
        source_path = normalize_remote_path(source_path)
        dest_path = normalize_remote_path(dest_path)

        items = self.source.list_children(source_path)
        if not items:
            logger.info(f"Nothing to sync in {self.source.name}:{source_path}")
            return report

        pool = WorkerPool(self.upload_manager.upload_file, workers,
                          self.retry_policy, self.queue_size)
        logger.info(f"Syncing {self.source.name}:{source_path} -> "
                    f"{self.destination.name}:{dest_path} with {workers} workers")

        with pool:
            self._sync_items(items, source_path, dest_path, pool, report)

        report.uploaded = pool.uploaded
        report.failed = pool.failed
        report.failed_jobs = list(pool.failed_jobs)
        logger.info(f"Sync finished: {report.uploaded} uploaded, {report.already_synced} already synced, "
                    f"{report.failed} failed, {report.folders} folders")
        return report

    def sync_tree(self, source_path: str, dest_path: str, pool: WorkerPool,
                  report: Optional[SyncReport] = None) -> SyncReport:
        """Mirror one folder, recursing into subfolders on the calling thread.

        Jobs go into ``pool``, which the caller owns, starts and closes.

        Raises:
            FolderCreationError: If ``dest_path`` could not be ensured
        """
        report = report if report is not None else SyncReport()
        source_path = normalize_remote_path(source_path)
        dest_path = normalize_remote_path(dest_path)

        items = self.source.list_children(source_path)
        if not items:
            logger.debug(f"Nothing to sync in {source_path}")
            return report

        return self._sync_items(items, source_path, dest_path, pool, report)

    def _sync_items(self, items: List[RemoteItem], source_path: str, dest_path: str,
                    pool: WorkerPool, report: SyncReport) -> SyncReport:
        self.ensurer.ensure(dest_path)
        dest_items = self.destination.list_children(dest_path)

        for item in items:
            if item.is_folder:
                logger.info(f"Directory: {item.name}")
                report.folders += 1
                self.sync_tree(join_remote(source_path, item.name),
                               join_remote(dest_path, item.name), pool, report)
                continue

            decision = compare(item, dest_items)
            if decision.action == SyncAction.SKIP:
                logger.info(f"Online: {item.name} {format_size(item.size)}")
                logger.debug(f"Skipping {item.item_path}: {decision.reason}")
                report.already_synced += 1
                continue

            logger.debug(f"Queueing {item.item_path}: {decision.reason}")
            pool.submit(SyncJob(item=item, dest_folder=dest_path, destination=self.destination))
            report.enqueued += 1

        return report
