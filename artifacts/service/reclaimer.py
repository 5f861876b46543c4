"""
Expiry reclaimer.

Deletes expired artifacts and their registry entries, plus files the registry
no longer knows about (orphans left behind by a restart, abandoned scratch
downloads). Construction does nothing on its own; periodic reclamation starts
with start() and ends with stop().

Deletion policy: a record stays registered until its file is actually gone,
so a failed deletion is retried on the next pass.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from apscheduler.schedulers.background import BackgroundScheduler

from artifacts.service.errors import StorageIOError
from artifacts.service.registry import ArtifactRegistry

logger = logging.getLogger(__name__)

RECLAIM_JOB_ID = 'reclaim-expired-artifacts'


@dataclass
class ReclaimReport:
    """Outcome of one reclamation pass"""

    reclaimed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    orphans_removed: List[str] = field(default_factory=list)
    scratch_removed: List[str] = field(default_factory=list)

    @property
    def total_removed(self):
        return len(self.reclaimed) + len(self.orphans_removed) + len(self.scratch_removed)


class ExpiryReclaimer:
    """
    Reclaims storage held by expired or unregistered artifacts.

    Args:
        registry: ArtifactRegistry to reclaim from (its store is used for files)
        orphan_ttl: Age after which an unregistered store file is deleted
        scratch_ttl: Age after which a leftover scratch file is deleted
    """

    def __init__(self, registry: ArtifactRegistry, orphan_ttl=timedelta(days=1),
                 scratch_ttl=timedelta(hours=1)):
        self.registry = registry
        self.store = registry.store
        self.orphan_ttl = orphan_ttl
        self.scratch_ttl = scratch_ttl
        self._scheduler = None

    def reclaim_expired(self, now=None, report=None):
        """
        Delete every artifact whose expiry is at or before now.

        Failures on individual files are logged and do not stop the batch.

        Returns:
            ReclaimReport
        """
        report = report or ReclaimReport()
        now = now or self.registry.now()
        expired = self.registry.expired(now)

        logger.info('Reclaiming %d expired artifacts', len(expired))
        for record in expired:
            try:
                self.registry.discard(record.filename)
                report.reclaimed.append(record.filename)
            except StorageIOError as e:
                logger.error('Failed to reclaim %s, will retry: %s', record.filename, e)
                report.failed.append(record.filename)
        return report

    def reclaim_orphans(self, now=None, report=None):
        """
        Delete unregistered store files older than the orphan TTL and scratch
        files older than the scratch TTL.

        Returns:
            ReclaimReport
        """
        report = report or ReclaimReport()
        now = now or self.registry.now()

        for filename in self.store.list_files():
            if self.registry.lookup_by_filename(filename) is not None:
                continue
            try:
                if self.store.modified_at(filename) + self.orphan_ttl > now:
                    continue
                if self.store.delete(filename):
                    report.orphans_removed.append(filename)
            except StorageIOError as e:
                logger.error('Failed to remove orphaned file %s: %s', filename, e)
                report.failed.append(filename)

        cutoff = (now - self.scratch_ttl).timestamp()
        for path in self.store.scratch_files():
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                report.scratch_removed.append(path.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error('Failed to remove stale scratch file %s: %s', path.name, e)
                report.failed.append(path.name)

        if report.orphans_removed or report.scratch_removed:
            logger.info(
                'Removed %d orphaned and %d stale scratch files',
                len(report.orphans_removed),
                len(report.scratch_removed),
            )
        return report

    def run_once(self):
        """One full pass: expired artifacts first, then orphans"""
        now = self.registry.now()
        report = self.reclaim_expired(now)
        return self.reclaim_orphans(now, report)

    def _run_scheduled(self):
        try:
            self.run_once()
        except Exception:
            # A crashed pass must not kill the schedule
            logger.exception('Scheduled reclamation pass failed')

    @property
    def running(self):
        return self._scheduler is not None and self._scheduler.running

    def start(self, interval):
        """Start periodic reclamation every `interval` seconds"""
        if self.running:
            return
        self._scheduler = BackgroundScheduler(timezone='UTC')
        self._scheduler.add_job(
            self._run_scheduled,
            'interval',
            seconds=interval,
            id=RECLAIM_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info('Reclaimer started (every %ss)', interval)

    def stop(self):
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info('Reclaimer stopped')
        self._scheduler = None

    def recheck(self, filename, grace):
        """
        Delete an artifact now if it expires within the grace window.

        Returns:
            bool: True if the artifact was deleted
        """
        record = self.registry.lookup_by_filename(filename)
        if record is None:
            return False
        if record.expires_at - self.registry.now() >= grace:
            return False
        try:
            self.registry.discard(filename)
        except StorageIOError as e:
            logger.error('Delayed deletion of %s failed: %s', filename, e)
            return False
        logger.info('Deleted %s shortly before expiry', filename)
        return True

    def schedule_recheck(self, filename, delay, grace):
        """
        Queue recheck() to run after `delay` seconds.

        Returns:
            bool: False when the reclaimer is not running and nothing was queued
        """
        if not self.running:
            logger.debug('Reclaimer not running, skipping recheck of %s', filename)
            return False
        self._scheduler.add_job(
            self.recheck,
            'date',
            run_date=self.registry.now() + timedelta(seconds=delay),
            args=[filename, grace],
        )
        return True
