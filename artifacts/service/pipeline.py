"""
Acquisition pipeline.

Turns a source URL into a served artifact: download with yt-dlp into the
scratch directory, transcode with ffmpeg into the store, register the result.
A live artifact for the same URL and media type short-circuits the whole run.

There is no per-URL lock. Two concurrent requests for a URL that is not yet
cached both run the full pipeline and each register their own artifact.
"""

import contextlib
import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass

from nanoid import generate

from artifacts.service.config import get_ffmpeg_args_for_type, get_format_selector_for_type
from artifacts.service.constants import (
    MEDIA_TYPE_AUDIO,
    MEDIA_TYPE_VIDEO,
    MEDIA_TYPES,
    PARTIAL_DOWNLOAD_SUFFIXES,
    TARGET_EXTENSIONS,
)
from artifacts.service.errors import (
    DownloadFailed,
    EmptyArtifact,
    OutputMissing,
    StorageIOError,
    TranscodeFailed,
    ValidationError,
)
from artifacts.service.platforms import detect_platform
from artifacts.service.registry import ArtifactRecord, ArtifactRegistry
from artifacts.service.runner import (
    DEFAULT_MAX_BUFFER,
    ProcessError,
    ProcessTimeout,
    run_process,
)
from artifacts.service.store import ArtifactStore

logger = logging.getLogger(__name__)

NANOID_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'

# yt-dlp names per-format downloads <base>.f<format_id>.<ext> before merging
FORMAT_INTERMEDIATE_RE = re.compile(r'\.f\d+\.')


@dataclass
class ArtifactHandle:
    """Reference to an artifact ready to be served"""

    filename: str
    record: ArtifactRecord
    cache_hit: bool = False

    @property
    def size_bytes(self):
        return self.record.size_bytes

    @property
    def expires_at(self):
        return self.record.expires_at


class AcquisitionPipeline:
    """
    Download-then-transcode orchestration over the process runner.

    Args:
        registry: ArtifactRegistry used for dedup and registration
        store: ArtifactStore holding scratch files and artifacts
        runner: Callable with the signature of run_process
        ytdlp_binary: Downloader executable
        ffmpeg_binary: Transcoder executable
        download_timeout: Downloader timeout for regular platforms
        slow_download_timeout: Downloader timeout for platforms needing backoff
        transcode_timeout: Transcoder timeout
        max_buffer: Output cap per subprocess stream
        format_selectors: Dict of media type to yt-dlp format selector (default: from settings)
        ffmpeg_args: Dict of media type to ffmpeg argument list (default: from settings)
        max_concurrent: Admission limit for concurrent runs (0 = unlimited)
        clock: Callable returning epoch seconds, used in generated filenames
    """

    def __init__(
        self,
        registry: ArtifactRegistry,
        store: ArtifactStore,
        runner=run_process,
        ytdlp_binary='yt-dlp',
        ffmpeg_binary='ffmpeg',
        download_timeout=300,
        slow_download_timeout=600,
        transcode_timeout=300,
        max_buffer=DEFAULT_MAX_BUFFER,
        format_selectors=None,
        ffmpeg_args=None,
        max_concurrent=0,
        clock=time.time,
    ):
        self.registry = registry
        self.store = store
        self.runner = runner
        self.ytdlp_binary = ytdlp_binary
        self.ffmpeg_binary = ffmpeg_binary
        self.download_timeout = download_timeout
        self.slow_download_timeout = slow_download_timeout
        self.transcode_timeout = transcode_timeout
        self.max_buffer = max_buffer
        if format_selectors is None:
            format_selectors = {t: get_format_selector_for_type(t) for t in MEDIA_TYPES}
        if ffmpeg_args is None:
            ffmpeg_args = {t: get_ffmpeg_args_for_type(t) for t in MEDIA_TYPES}
        self.format_selectors = format_selectors
        self.ffmpeg_args = ffmpeg_args
        self.clock = clock
        self._admission = threading.BoundedSemaphore(max_concurrent) if max_concurrent else None

    def acquire(self, source_url, media_type=MEDIA_TYPE_AUDIO, progress=None) -> ArtifactHandle:
        """
        Return a servable artifact for a source URL, producing it if needed.

        The URL is expected to have passed validation already.

        Args:
            source_url: Validated video URL
            media_type: 'audio' (MP3) or 'video' (capped-resolution MP4)
            progress: Optional callable(str) receiving progress messages

        Returns:
            ArtifactHandle

        Raises:
            ValidationError: Unknown media type
            DownloadFailed: Downloader exited nonzero, timed out or overflowed
            OutputMissing: Downloader succeeded but left no file
            TranscodeFailed: Transcoder exited nonzero, timed out or overflowed
            EmptyArtifact: Transcoder output is missing or zero bytes
            StorageIOError: Filesystem operation failed
        """

        def log(message):
            logger.info(message)
            if progress:
                progress(message)

        if media_type not in TARGET_EXTENSIONS:
            raise ValidationError(f'Unsupported media type: {media_type}')

        cached = self.registry.lookup(source_url, media_type)
        if cached:
            log(f'Using cached artifact: {cached.filename}')
            return ArtifactHandle(filename=cached.filename, record=cached, cache_hit=True)

        with self._admitted():
            # A run queued behind an identical one finds its result here
            if self._admission is not None:
                cached = self.registry.lookup(source_url, media_type)
                if cached:
                    log(f'Using cached artifact after waiting: {cached.filename}')
                    return ArtifactHandle(filename=cached.filename, record=cached, cache_hit=True)
            record = self._produce(source_url, media_type, log)
        return ArtifactHandle(filename=record.filename, record=record, cache_hit=False)

    @contextlib.contextmanager
    def _admitted(self):
        if self._admission is None:
            yield
            return
        with self._admission:
            yield

    def _produce(self, source_url, media_type, log):
        self.store.ensure()
        scratch_base = self.scratch_base()
        try:
            scratch_path = self.download(source_url, media_type, scratch_base, log)
            filename = self.transcode(scratch_path, source_url, media_type, log)
            record = self.registry.register(filename, source_url)
            log(f'Registered {filename}: {record.size_bytes} bytes')
            return record
        finally:
            self._cleanup_scratch(scratch_base, log)

    def scratch_base(self):
        """Unique base name for one download: epoch millis plus random suffix"""
        return f'{int(self.clock() * 1000)}_{generate(NANOID_ALPHABET, size=10)}'

    def artifact_filename(self, source_url, extension):
        """Final artifact name: URL hash, epoch millis and a short random suffix"""
        url_hash = hashlib.md5(source_url.encode('utf-8')).hexdigest()
        millis = int(self.clock() * 1000)
        suffix = generate(NANOID_ALPHABET, size=6)
        return f'{url_hash}_{millis}_{suffix}{extension}'

    def download(self, source_url, media_type, scratch_base, log):
        """
        Run the downloader into the scratch directory.

        Returns:
            Path to the downloaded file
        """
        platform = detect_platform(source_url)
        slow = bool(platform and platform.needs_backoff)
        timeout = self.slow_download_timeout if slow else self.download_timeout

        template = self.store.scratch_dir / f'{scratch_base}.%(ext)s'
        args = [
            '-f', self.format_selectors[media_type],
            '--no-playlist',
            '--restrict-filenames',
            '--no-progress',
        ]
        if media_type == MEDIA_TYPE_VIDEO:
            args += ['--merge-output-format', 'mp4']
        if platform:
            args += list(platform.extra_args)
        args += ['-o', str(template), '--', source_url]

        log(f"Downloading {source_url} ({platform.name if platform else 'unknown platform'}, "
            f'timeout {timeout}s)')
        try:
            self.runner(
                self.ytdlp_binary,
                args,
                cwd=self.store.scratch_dir,
                timeout=timeout,
                max_buffer=self.max_buffer,
            )
        except ProcessTimeout as e:
            raise DownloadFailed(timed_out=True) from e
        except ProcessError as e:
            raise DownloadFailed(f'Video download failed: {e}') from e

        return self.locate_download(scratch_base, log)

    def locate_download(self, scratch_base, log):
        """
        Find the file the downloader produced.

        The downloader picks its own extension, so match on the base name.
        Merged output wins over per-format intermediates, then the largest file.

        Raises:
            OutputMissing: If no complete file with the base name exists
        """
        matches = [
            p for p in self.store.scratch_files(prefix=f'{scratch_base}.')
            if p.suffix.lower() not in PARTIAL_DOWNLOAD_SUFFIXES
        ]
        if not matches:
            logger.error('No downloaded file found for scratch base %s', scratch_base)
            raise OutputMissing()

        def preference(path):
            intermediate = bool(FORMAT_INTERMEDIATE_RE.search(path.name[len(scratch_base):]))
            try:
                size = path.stat().st_size
            except OSError:
                size = 0
            return (intermediate, -size, path.name)

        path = min(matches, key=preference)
        log(f'Downloaded: {path.name}')
        return path

    def transcode(self, input_path, source_url, media_type, log):
        """
        Run the transcoder from a scratch file into the store.

        Returns:
            str: Filename of the produced artifact
        """
        extension = TARGET_EXTENSIONS[media_type]
        filename = self.artifact_filename(source_url, extension)
        output_path = self.store.path_for(filename)

        args = ['-y', '-i', str(input_path)] + list(self.ffmpeg_args[media_type]) + [str(output_path)]

        log(f'Transcoding {input_path.name} to {filename}')
        try:
            self.runner(
                self.ffmpeg_binary,
                args,
                cwd=self.store.root,
                timeout=self.transcode_timeout,
                max_buffer=self.max_buffer,
            )
        except ProcessError as e:
            self._discard_partial(filename)
            if isinstance(e, ProcessTimeout):
                raise TranscodeFailed(timed_out=True) from e
            raise TranscodeFailed(f'Transcoding failed: {e}') from e

        try:
            size = output_path.stat().st_size
        except FileNotFoundError:
            logger.error('Transcoder reported success but %s does not exist', filename)
            raise EmptyArtifact('Conversion produced no output file')
        except OSError as e:
            self._discard_partial(filename)
            raise StorageIOError(f'Could not stat {filename}: {e}') from e
        if size == 0:
            self._discard_partial(filename)
            raise EmptyArtifact()

        return filename

    def _discard_partial(self, filename):
        try:
            self.store.delete(filename)
        except StorageIOError as e:
            logger.warning('Failed to remove partial output %s: %s', filename, e)

    def _cleanup_scratch(self, scratch_base, log):
        """Remove every scratch file of this run, logging but never raising"""
        try:
            leftovers = self.store.scratch_files(prefix=f'{scratch_base}.')
        except OSError as e:
            logger.warning('Failed to list scratch files for %s: %s', scratch_base, e)
            return

        for path in leftovers:
            try:
                path.unlink()
                log(f'Cleaned up scratch file: {path.name}')
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning('Failed to clean up scratch file %s: %s', path, e)
