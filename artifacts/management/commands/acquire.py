"""
Django management command for acquiring an artifact from a video URL.

This is a thin CLI wrapper around the acquisition pipeline. The registry lives
only as long as this process, so the produced file is left in the store as an
unregistered artifact; the web server serves it through its fallback path.
"""
import json
import sys

from django.core.management.base import BaseCommand, CommandError

from artifacts.runtime import get_runtime
from artifacts.service.constants import MEDIA_TYPE_AUDIO, MEDIA_TYPES
from artifacts.service.errors import AcquisitionError


class Command(BaseCommand):
    help = 'Download and convert a video URL into a servable artifact'

    def add_arguments(self, parser):
        parser.add_argument(
            'url',
            type=str,
            help='Video URL from a supported platform'
        )
        parser.add_argument(
            '--type',
            type=str,
            default=MEDIA_TYPE_AUDIO,
            choices=MEDIA_TYPES,
            help='Artifact type to produce (default: audio)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be done without running the downloader'
        )
        parser.add_argument(
            '--verbose',
            action='store_true',
            help='Enable verbose output'
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Output result as JSON'
        )

    def handle(self, *args, **options):
        from artifacts.service.platforms import validate_url

        url = options['url'].strip()
        media_type = options['type']
        verbose = options['verbose']
        output_json = options['json']

        try:
            platform = validate_url(url)
        except AcquisitionError as e:
            raise CommandError(e.message)

        runtime = get_runtime()
        pipeline = runtime.pipeline

        if options['dry_run']:
            timeout = pipeline.slow_download_timeout if platform.needs_backoff else pipeline.download_timeout
            if output_json:
                self.stdout.write(json.dumps({
                    'dry_run': True,
                    'url': url,
                    'platform': platform.name,
                    'type': media_type,
                    'format': pipeline.format_selectors[media_type],
                    'download_timeout': timeout,
                    'store_dir': str(runtime.store.root),
                }, indent=2))
            else:
                self.stdout.write(self.style.WARNING("DRY RUN MODE - Nothing will be downloaded"))
                self.stdout.write(f"URL: {url}")
                self.stdout.write(f"Platform: {platform.label}")
                self.stdout.write(f"Type: {media_type}")
                self.stdout.write(f"Format: {pipeline.format_selectors[media_type]}")
                self.stdout.write(f"Download timeout: {timeout}s")
                self.stdout.write(f"Store: {runtime.store.root}")
            return

        progress = None
        if verbose and not output_json:
            progress = self.stdout.write

        try:
            handle = pipeline.acquire(url, media_type, progress=progress)
        except AcquisitionError as e:
            if output_json:
                self.stdout.write(json.dumps({'success': False, 'error': e.message}, indent=2))
                sys.exit(1)
            raise CommandError(f"Acquisition failed: {e.message}")

        output_path = runtime.store.path_for(handle.filename)
        if output_json:
            self.stdout.write(json.dumps({
                'success': True,
                'url': url,
                'type': media_type,
                'filename': handle.filename,
                'output_path': str(output_path),
                'file_size': handle.size_bytes,
                'expires_at': handle.expires_at.isoformat(),
            }, indent=2))
        else:
            self.stdout.write(self.style.SUCCESS("✓ Acquisition complete"))
            self.stdout.write(f"  URL: {url}")
            self.stdout.write(f"  Type: {media_type}")
            self.stdout.write(f"  Output: {output_path}")
            self.stdout.write(f"  Size: {handle.size_bytes:,} bytes")
