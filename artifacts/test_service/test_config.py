"""
Tests for service/config.py
"""

from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase, override_settings

from artifacts.service.config import (
    get_download_timeout,
    get_ffmpeg_args_for_type,
    get_format_selector_for_type,
    get_orphan_ttl,
    get_scratch_dir,
    get_store_dir,
    get_ttl,
    resolve_ffmpeg_binary,
)


class ConfigServiceTest(TestCase):
    """Tests for configuration adapter"""

    def test_get_format_selector_audio(self):
        """Test getting the yt-dlp format selector for audio"""
        self.assertEqual(get_format_selector_for_type('audio'), 'bestaudio/best')

    @override_settings(CLIPCACHE_VIDEO_MAX_HEIGHT=480)
    def test_get_format_selector_video_uses_height_cap(self):
        """Test that the video selector follows the height cap"""
        self.assertIn('height<=480', get_format_selector_for_type('video'))

    def test_get_format_selector_invalid(self):
        """Test getting a format selector for an invalid type"""
        self.assertEqual(get_format_selector_for_type('invalid'), '')

    def test_get_ffmpeg_args_audio(self):
        """Test getting ffmpeg args for audio"""
        args = get_ffmpeg_args_for_type('audio')
        self.assertIsInstance(args, list)
        self.assertIn('libmp3lame', args)
        self.assertIn('-vn', args)

    @override_settings(CLIPCACHE_VIDEO_MAX_HEIGHT=720)
    def test_get_ffmpeg_args_video(self):
        """Test that video args are split and carry the height cap"""
        args = get_ffmpeg_args_for_type('video')
        self.assertIn('libx264', args)
        self.assertEqual(args[args.index('-vf') + 1], "scale=-2:'min(720,ih)'")

    def test_get_ffmpeg_args_invalid(self):
        """Test getting ffmpeg args for invalid type"""
        self.assertEqual(get_ffmpeg_args_for_type('invalid'), [])

    @override_settings(CLIPCACHE_STORE_DIR='/tmp/clipcache-store', CLIPCACHE_SCRATCH_DIR='')
    def test_scratch_dir_defaults_under_store(self):
        """Test that the scratch directory defaults to <store>/scratch"""
        self.assertEqual(get_store_dir(), Path('/tmp/clipcache-store'))
        self.assertEqual(get_scratch_dir(), Path('/tmp/clipcache-store/scratch'))

    @override_settings(CLIPCACHE_SCRATCH_DIR='/tmp/clipcache-scratch')
    def test_scratch_dir_override(self):
        """Test an explicit scratch directory"""
        self.assertEqual(get_scratch_dir(), Path('/tmp/clipcache-scratch'))

    @override_settings(CLIPCACHE_TTL_SECONDS=60, CLIPCACHE_ORPHAN_TTL=120)
    def test_lifetimes(self):
        """Test that lifetimes are returned as timedeltas"""
        self.assertEqual(get_ttl(), timedelta(seconds=60))
        self.assertEqual(get_orphan_ttl(), timedelta(seconds=120))

    @override_settings(CLIPCACHE_DOWNLOAD_TIMEOUT=100, CLIPCACHE_DOWNLOAD_TIMEOUT_SLOW=200)
    def test_download_timeouts(self):
        """Test the regular and slow download timeouts"""
        self.assertEqual(get_download_timeout(), 100)
        self.assertEqual(get_download_timeout(slow=True), 200)

    @override_settings(CLIPCACHE_FFMPEG_BINARY='/custom/ffmpeg')
    def test_resolve_ffmpeg_binary_setting_wins(self):
        """Test that an explicit ffmpeg setting is used as-is"""
        self.assertEqual(resolve_ffmpeg_binary(), '/custom/ffmpeg')

    @override_settings(CLIPCACHE_FFMPEG_BINARY='')
    @patch('artifacts.service.config.FFMPEG_CANDIDATES', [])
    @patch.dict('os.environ', {}, clear=True)
    def test_resolve_ffmpeg_binary_falls_back_to_path(self):
        """Test the bare command fallback"""
        self.assertEqual(resolve_ffmpeg_binary(), 'ffmpeg')
