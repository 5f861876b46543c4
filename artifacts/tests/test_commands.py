"""
Tests for the acquire and reclaim management commands
"""

import io
import json
import os
import tempfile
import time
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from artifacts.runtime import build_runtime
from artifacts.service.runner import ProcessFailed
from artifacts.tests.test_views import fake_runner

URL = 'https://www.youtube.com/watch?v=abc123'


class CommandTestCase(TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.settings_override = override_settings(
            CLIPCACHE_STORE_DIR=self.temp_dir.name,
            CLIPCACHE_SCRATCH_DIR='',
        )
        self.settings_override.enable()
        self.runtime = build_runtime(runner=fake_runner)
        self.runtime.store.ensure()

    def tearDown(self):
        self.settings_override.disable()
        self.temp_dir.cleanup()


class AcquireCommandTest(CommandTestCase):
    """Tests for manage.py acquire"""

    def setUp(self):
        super().setUp()
        self.patcher = patch(
            'artifacts.management.commands.acquire.get_runtime', return_value=self.runtime
        )
        self.patcher.start()

    def tearDown(self):
        self.patcher.stop()
        super().tearDown()

    def test_acquire_json(self):
        """Test JSON output of a successful run"""
        out = io.StringIO()
        call_command('acquire', URL, '--json', stdout=out)

        data = json.loads(out.getvalue())
        self.assertTrue(data['success'])
        self.assertEqual(data['type'], 'audio')
        self.assertTrue(data['filename'].endswith('.mp3'))
        self.assertTrue(self.runtime.store.exists(data['filename']))

    def test_acquire_human_readable(self):
        """Test the default output"""
        out = io.StringIO()
        call_command('acquire', URL, '--type', 'video', stdout=out)

        self.assertIn('Acquisition complete', out.getvalue())
        self.assertIn('.mp4', out.getvalue())

    def test_acquire_verbose_reports_progress(self):
        """Test that --verbose forwards pipeline progress"""
        out = io.StringIO()
        call_command('acquire', URL, '--verbose', stdout=out)
        self.assertIn('Downloading', out.getvalue())

    def test_dry_run_runs_nothing(self):
        """Test that --dry-run does not touch the store"""
        out = io.StringIO()
        call_command('acquire', URL, '--dry-run', '--json', stdout=out)

        data = json.loads(out.getvalue())
        self.assertTrue(data['dry_run'])
        self.assertEqual(data['platform'], 'youtube')
        self.assertEqual(self.runtime.store.list_files(), [])

    def test_unsupported_url(self):
        """Test that validation errors become command errors"""
        with self.assertRaises(CommandError):
            call_command('acquire', 'https://example.com/x', stdout=io.StringIO())

    def test_failure_raises_command_error(self):
        """Test that pipeline failures become command errors"""
        with patch.object(self.runtime.pipeline, 'runner', side_effect=ProcessFailed(1)):
            with self.assertRaises(CommandError):
                call_command('acquire', URL, stdout=io.StringIO())

    def test_failure_json_exits_nonzero(self):
        """Test that --json failures print the error and exit 1"""
        out = io.StringIO()
        with patch.object(self.runtime.pipeline, 'runner', side_effect=ProcessFailed(1)):
            with self.assertRaises(SystemExit) as ctx:
                call_command('acquire', URL, '--json', stdout=out)

        self.assertEqual(ctx.exception.code, 1)
        self.assertFalse(json.loads(out.getvalue())['success'])


class ReclaimCommandTest(CommandTestCase):
    """Tests for manage.py reclaim"""

    def setUp(self):
        super().setUp()
        self.patcher = patch(
            'artifacts.management.commands.reclaim.get_runtime', return_value=self.runtime
        )
        self.patcher.start()

        store = self.runtime.store
        self.old_artifact = store.root / 'old.mp3'
        self.new_artifact = store.root / 'new.mp3'
        self.old_scratch = store.scratch_dir / '1_abc.webm'
        for path in (self.old_artifact, self.new_artifact, self.old_scratch):
            path.write_bytes(b'x' * 10)

        stamp = time.time() - 2 * 60 * 60
        os.utime(self.old_artifact, (stamp, stamp))
        os.utime(self.old_scratch, (stamp, stamp))

    def tearDown(self):
        self.patcher.stop()
        super().tearDown()

    def test_dry_run_deletes_nothing(self):
        """Test that --dry-run only lists"""
        out = io.StringIO()
        call_command('reclaim', '--dry-run', stdout=out)

        self.assertIn('old.mp3', out.getvalue())
        self.assertIn('1_abc.webm', out.getvalue())
        self.assertNotIn('new.mp3', out.getvalue())
        self.assertTrue(self.old_artifact.exists())

    def test_force_deletes_old_files(self):
        """Test deletion without confirmation"""
        out = io.StringIO()
        call_command('reclaim', '--force', stdout=out)

        self.assertFalse(self.old_artifact.exists())
        self.assertFalse(self.old_scratch.exists())
        self.assertTrue(self.new_artifact.exists())
        self.assertIn('Deleted 2 of 2', out.getvalue())

    @patch('builtins.input', return_value='n')
    def test_confirmation_declined(self, mock_input):
        """Test that declining the prompt keeps the files"""
        out = io.StringIO()
        call_command('reclaim', stdout=out)

        mock_input.assert_called_once()
        self.assertTrue(self.old_artifact.exists())
        self.assertIn('Cancelled', out.getvalue())

    def test_max_age(self):
        """Test that a larger max age spares younger files"""
        out = io.StringIO()
        call_command('reclaim', '--force', '--max-age', '180', stdout=out)

        self.assertTrue(self.old_artifact.exists())
        self.assertIn('No files older than 180 minutes', out.getvalue())
