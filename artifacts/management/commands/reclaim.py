"""
Management command to clean up artifact storage from the command line.

A separate process cannot see the web server's in-memory registry, so this
works from the filesystem alone: any artifact or scratch file older than
--max-age is considered abandoned. Use it after restarts or crashes.
"""
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

from django.core.management.base import BaseCommand
from django.utils import timezone

from artifacts.runtime import get_runtime
from artifacts.service.errors import StorageIOError


class Command(BaseCommand):
    help = 'Delete artifact and scratch files older than a given age'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Delete files without confirmation'
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=30,
            help='Age in minutes after which a file is considered abandoned (default: 30)'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        force = options['force']
        max_age_minutes = options['max_age']

        store = get_runtime().store
        cutoff = timezone.now() - timedelta(minutes=max_age_minutes)

        candidates = []
        for filename in store.list_files():
            path = store.path_for(filename)
            if store.modified_at(filename) <= cutoff:
                candidates.append(('artifact', path))
        for path in store.scratch_files():
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=dt_timezone.utc)
            if modified <= cutoff:
                candidates.append(('scratch', path))

        if not candidates:
            self.stdout.write(self.style.SUCCESS(
                f"No files older than {max_age_minutes} minutes"
            ))
            return

        plural = 's' if len(candidates) != 1 else ''
        self.stdout.write(f"\nFound {len(candidates)} abandoned file{plural}:")
        self.stdout.write(f"{'=' * 80}")

        total_size = 0
        for kind, path in candidates:
            size = path.stat().st_size
            total_size += size
            self.stdout.write(f"{kind:8} | {path.name:60} | {size / (1024 * 1024):6.1f} MB")

        self.stdout.write(f"{'=' * 80}")
        self.stdout.write(f"Total size: {total_size / (1024 * 1024):.1f} MB\n")

        if dry_run:
            self.stdout.write(self.style.WARNING(
                f"\nDRY RUN: Would delete {len(candidates)} file{plural}"
            ))
            self.stdout.write("Run without --dry-run to actually delete")
            return

        if not force:
            response = input(f"\nDelete these {len(candidates)} file{plural}? [y/N]: ")
            if response.lower() != 'y':
                self.stdout.write("Cancelled")
                return

        deleted_count = 0
        for kind, path in candidates:
            try:
                if kind == 'artifact':
                    store.delete(path.name)
                else:
                    path.unlink(missing_ok=True)
                self.stdout.write(self.style.SUCCESS(f"✓ Deleted: {path.name}"))
                deleted_count += 1
            except (OSError, StorageIOError) as e:
                self.stdout.write(self.style.ERROR(f"✗ Failed to delete {path.name}: {e}"))

        self.stdout.write(self.style.SUCCESS(
            f"\n✓ Deleted {deleted_count} of {len(candidates)} file{plural}"
        ))
