"""
Directory-backed artifact store.

Produced artifacts live flat in the store directory, identified by filename.
Pre-transcode downloads go to a separate scratch directory so they are never
mistaken for servable artifacts.
"""

import logging
from datetime import datetime, timezone as dt_timezone
from pathlib import Path

from artifacts.service.errors import StorageIOError

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Filesystem location for produced artifacts and scratch downloads"""

    def __init__(self, root, scratch_dir=None):
        self.root = Path(root)
        self.scratch_dir = Path(scratch_dir) if scratch_dir else self.root / 'scratch'

    def ensure(self):
        """Create the store and scratch directories if missing"""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f'Could not create storage directory: {e}') from e

    @staticmethod
    def is_safe_filename(filename):
        """Reject empty names, path separators and traversal sequences"""
        if not filename or not isinstance(filename, str):
            return False
        if '..' in filename or '/' in filename or '\\' in filename:
            return False
        if '\x00' in filename:
            return False
        return True

    def path_for(self, filename):
        if not self.is_safe_filename(filename):
            raise StorageIOError(f'Invalid filename: {filename!r}')
        return self.root / filename

    def exists(self, filename):
        if not self.is_safe_filename(filename):
            return False
        return self.path_for(filename).is_file()

    def size(self, filename):
        """Size in bytes of a stored file"""
        try:
            return self.path_for(filename).stat().st_size
        except OSError as e:
            raise StorageIOError(f'Could not stat {filename}: {e}') from e

    def modified_at(self, filename):
        """Last modification time of a stored file as an aware datetime"""
        try:
            mtime = self.path_for(filename).stat().st_mtime
        except OSError as e:
            raise StorageIOError(f'Could not stat {filename}: {e}') from e
        return datetime.fromtimestamp(mtime, tz=dt_timezone.utc)

    def delete(self, filename):
        """
        Delete a stored file.

        A file that is already gone counts as deleted.

        Returns:
            bool: True if a file was removed, False if it did not exist

        Raises:
            StorageIOError: If the file exists but could not be removed
        """
        path = self.path_for(filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f'Could not delete {filename}: {e}') from e
        logger.info('Deleted artifact file: %s', filename)
        return True

    def list_files(self):
        """Names of all regular files directly in the store"""
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def scratch_files(self, prefix=None):
        """Scratch files, optionally restricted to those starting with prefix"""
        if not self.scratch_dir.exists():
            return []
        files = [p for p in self.scratch_dir.iterdir() if p.is_file()]
        if prefix:
            files = [p for p in files if p.name.startswith(prefix)]
        return sorted(files)
