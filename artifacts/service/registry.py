"""
In-memory artifact registry.

Maps produced filenames to their bookkeeping (source URL, lifetime, size).
The registry is scoped to one process: it is not persisted, so after a
restart every file in the store is unregistered (an orphan).

All operations are atomic with respect to each other. Sequences of
operations (such as lookup followed by insert) are not.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from django.utils import timezone

from artifacts.service.constants import media_type_for_extension
from artifacts.service.store import ArtifactStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)


@dataclass(frozen=True)
class ArtifactRecord:
    """Bookkeeping for one produced artifact file"""

    filename: str
    source_url: str
    created_at: datetime
    expires_at: datetime
    size_bytes: int

    @property
    def extension(self):
        return Path(self.filename).suffix.lower()

    @property
    def media_type(self):
        return media_type_for_extension(self.extension)

    def is_expired(self, now):
        return self.expires_at <= now

    def seconds_remaining(self, now):
        return max(0, int((self.expires_at - now).total_seconds()))


@dataclass(frozen=True)
class RegistryStats:
    count: int
    total_bytes: int
    expired_count: int


class ArtifactRegistry:
    """
    Thread-safe registry of produced artifacts.

    Args:
        store: ArtifactStore holding the backing files
        ttl: Lifetime of every record registered through this instance
        clock: Callable returning the current aware datetime
    """

    def __init__(self, store: ArtifactStore, ttl: timedelta = DEFAULT_TTL,
                 clock: Callable[[], datetime] = timezone.now):
        if ttl <= timedelta(0):
            raise ValueError('ttl must be positive')
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self._records: Dict[str, ArtifactRecord] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._records)

    def now(self):
        return self.clock()

    def lookup(self, url, media_type=None) -> Optional[ArtifactRecord]:
        """
        Find a live artifact for a source URL.

        Expired records are skipped. A record whose backing file has vanished
        from the store is removed and treated as a miss. When several live
        records exist for the URL, the newest wins.

        Args:
            url: Source URL the artifact was produced from
            media_type: Optional 'audio' or 'video' restriction

        Returns:
            ArtifactRecord or None
        """
        now = self.now()
        with self._lock:
            candidates = [
                r for r in self._records.values()
                if r.source_url == url
                and not r.is_expired(now)
                and (media_type is None or r.media_type == media_type)
            ]
            candidates.sort(key=lambda r: r.created_at, reverse=True)

            for record in candidates:
                if self.store.exists(record.filename):
                    return record
                logger.info('Backing file missing, dropping record: %s', record.filename)
                self._records.pop(record.filename, None)
        return None

    def lookup_by_filename(self, filename) -> Optional[ArtifactRecord]:
        with self._lock:
            return self._records.get(filename)

    def insert(self, record: ArtifactRecord):
        with self._lock:
            self._records[record.filename] = record
        logger.info('Registered %s (expires %s)', record.filename, record.expires_at.isoformat())

    def register(self, filename, source_url) -> ArtifactRecord:
        """
        Create and insert a record for a file already present in the store.

        Raises:
            StorageIOError: If the file cannot be stat'ed
        """
        size = self.store.size(filename)
        created_at = self.now()
        record = ArtifactRecord(
            filename=filename,
            source_url=source_url,
            created_at=created_at,
            expires_at=created_at + self.ttl,
            size_bytes=size,
        )
        self.insert(record)
        return record

    def remove(self, filename) -> Optional[ArtifactRecord]:
        with self._lock:
            return self._records.pop(filename, None)

    def discard(self, filename) -> bool:
        """
        Delete an artifact's backing file, then its record.

        The record is only removed once the file is gone, so a failed deletion
        is retried by the next reclamation pass.

        Returns:
            bool: True if a file was removed from disk

        Raises:
            StorageIOError: If the file exists but could not be deleted
        """
        deleted = self.store.delete(filename)
        self.remove(filename)
        return deleted

    def all_live(self) -> Set[ArtifactRecord]:
        """Records that have not expired yet"""
        now = self.now()
        with self._lock:
            return {r for r in self._records.values() if not r.is_expired(now)}

    def all_records(self) -> List[ArtifactRecord]:
        with self._lock:
            return list(self._records.values())

    def expired(self, now=None) -> List[ArtifactRecord]:
        """Snapshot of records whose expiry is at or before now"""
        now = now or self.now()
        with self._lock:
            return [r for r in self._records.values() if r.is_expired(now)]

    def stats(self) -> RegistryStats:
        now = self.now()
        with self._lock:
            records = list(self._records.values())
        return RegistryStats(
            count=len(records),
            total_bytes=sum(r.size_bytes for r in records),
            expired_count=sum(1 for r in records if r.is_expired(now)),
        )
