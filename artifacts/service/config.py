"""
Configuration adapter for artifact acquisition settings.

Centralizes access to Django settings and environment variables,
ensuring consistent configuration across the CLI and the web app.
"""

import os
import shlex
from datetime import timedelta
from pathlib import Path

from django.conf import settings

from artifacts.service.constants import MEDIA_TYPE_AUDIO, MEDIA_TYPE_VIDEO

# Common install locations checked when FFMPEG_PATH is not set
FFMPEG_CANDIDATES = [
    '/opt/homebrew/bin/ffmpeg',
    '/usr/local/bin/ffmpeg',
]


def get_store_dir():
    """Get the directory served artifacts are written to"""
    return Path(settings.CLIPCACHE_STORE_DIR)


def get_scratch_dir():
    """Get the directory the downloader writes pre-transcode files to"""
    scratch_dir = getattr(settings, 'CLIPCACHE_SCRATCH_DIR', '')
    if scratch_dir:
        return Path(scratch_dir)
    return get_store_dir() / 'scratch'


def get_ttl():
    """Get the lifetime of a produced artifact"""
    return timedelta(seconds=settings.CLIPCACHE_TTL_SECONDS)


def get_orphan_ttl():
    """
    Get the synthetic lifetime given to files found in the store without a
    registry entry (for example after a restart).
    """
    return timedelta(seconds=settings.CLIPCACHE_ORPHAN_TTL)


def get_scratch_ttl():
    """Get the age after which a leftover scratch file is considered abandoned"""
    return timedelta(seconds=settings.CLIPCACHE_SCRATCH_TTL)


def get_reclaim_interval():
    """Get the number of seconds between two periodic reclamation passes"""
    return settings.CLIPCACHE_RECLAIM_INTERVAL


def get_download_timeout(slow=False):
    """
    Get the downloader timeout in seconds.

    Args:
        slow: True for platforms that need retry/backoff flags

    Returns:
        int: Timeout in seconds
    """
    if slow:
        return settings.CLIPCACHE_DOWNLOAD_TIMEOUT_SLOW
    return settings.CLIPCACHE_DOWNLOAD_TIMEOUT


def get_transcode_timeout():
    return settings.CLIPCACHE_TRANSCODE_TIMEOUT


def get_max_buffer():
    """Get the cap in bytes on captured output per subprocess stream"""
    return settings.CLIPCACHE_MAX_BUFFER


def get_ytdlp_binary():
    return settings.CLIPCACHE_YTDLP_BINARY


def resolve_ffmpeg_binary():
    """
    Resolve the ffmpeg executable to use.

    Order: CLIPCACHE_FFMPEG_BINARY setting, FFMPEG_PATH environment variable,
    common Homebrew locations, then the bare command on PATH.

    Returns:
        str: ffmpeg executable path or name
    """
    configured = getattr(settings, 'CLIPCACHE_FFMPEG_BINARY', '')
    if configured:
        return configured

    env_path = os.environ.get('FFMPEG_PATH')
    if env_path and Path(env_path).exists():
        return env_path

    for candidate in FFMPEG_CANDIDATES:
        if Path(candidate).exists():
            return candidate

    return 'ffmpeg'


def get_video_max_height():
    return settings.CLIPCACHE_VIDEO_MAX_HEIGHT


def get_format_selector_for_type(media_type):
    """
    Get the yt-dlp format selector for the specified media type.

    Args:
        media_type: 'audio' or 'video'

    Returns:
        str: yt-dlp format selector
    """
    if media_type == MEDIA_TYPE_AUDIO:
        return 'bestaudio/best'
    elif media_type == MEDIA_TYPE_VIDEO:
        height = get_video_max_height()
        return f'bestvideo[height<={height}]+bestaudio/best[height<={height}]/best'
    else:
        return ''


def get_ffmpeg_args_for_type(media_type):
    """
    Get ffmpeg arguments for the specified media type.

    Args:
        media_type: 'audio' or 'video'

    Returns:
        list: ffmpeg arguments placed between the input and output paths
    """
    if media_type == MEDIA_TYPE_AUDIO:
        args = settings.CLIPCACHE_FFMPEG_ARGS_AUDIO
    elif media_type == MEDIA_TYPE_VIDEO:
        args = settings.CLIPCACHE_FFMPEG_ARGS_VIDEO.format(
            max_height=get_video_max_height()
        )
    else:
        args = ''
    return shlex.split(args)


def get_serve_recheck_delay():
    """Get the delay in seconds before re-checking a just-served artifact"""
    return settings.CLIPCACHE_SERVE_RECHECK_DELAY


def get_serve_grace():
    """Get the window within which a served artifact is deleted early"""
    return timedelta(seconds=settings.CLIPCACHE_SERVE_GRACE)


def get_max_concurrent_acquisitions():
    """Get the admission limit for concurrent pipeline runs (0 = unlimited)"""
    return settings.CLIPCACHE_MAX_CONCURRENT_ACQUISITIONS
