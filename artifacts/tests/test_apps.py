"""
Tests for artifacts/apps.py
"""

from unittest.mock import MagicMock, patch

from django.apps import apps
from django.test import TestCase, override_settings

from artifacts.apps import ArtifactsConfig, is_serving_process


class IsServingProcessTest(TestCase):
    """Tests for deciding where the reclaimer runs"""

    def test_wsgi_server(self):
        """Test that a process not started through manage.py serves"""
        self.assertTrue(is_serving_process(['/usr/bin/gunicorn', 'clipcache.wsgi'], {}))

    def test_other_management_commands(self):
        """Test that one-off commands never start the reclaimer"""
        for command in ('acquire', 'reclaim', 'check', 'migrate'):
            with self.subTest(command=command):
                self.assertFalse(is_serving_process(['manage.py', command], {}))

    def test_runserver_autoreloader_parent(self):
        """Test that only the reloaded child of runserver serves"""
        self.assertFalse(is_serving_process(['manage.py', 'runserver'], {}))
        self.assertTrue(is_serving_process(['manage.py', 'runserver'], {'RUN_MAIN': 'true'}))

    def test_runserver_noreload(self):
        """Test that runserver without the reloader serves"""
        self.assertTrue(is_serving_process(['./manage.py', 'runserver', '--noreload'], {}))


class ReadyTest(TestCase):
    """Tests for reclaimer autostart"""

    def setUp(self):
        self.app_config = apps.get_app_config('artifacts')
        self.runtime = MagicMock()
        self.runtime_patcher = patch.object(
            ArtifactsConfig, 'get_runtime', return_value=self.runtime
        )
        self.mock_get_runtime = self.runtime_patcher.start()

    def tearDown(self):
        self.runtime_patcher.stop()

    @override_settings(CLIPCACHE_RECLAIM_AUTOSTART=True, CLIPCACHE_RECLAIM_INTERVAL=60)
    @patch('artifacts.apps.is_serving_process', return_value=True)
    def test_starts_in_serving_process(self, mock_serving):
        """Test that the reclaimer starts when serving"""
        self.app_config.ready()
        self.runtime.reclaimer.start.assert_called_once_with(60)

    @override_settings(CLIPCACHE_RECLAIM_AUTOSTART=True)
    @patch('artifacts.apps.is_serving_process', return_value=False)
    def test_skipped_in_management_command(self, mock_serving):
        """Test that management commands do not build a runtime or scheduler"""
        self.app_config.ready()
        self.mock_get_runtime.assert_not_called()

    @override_settings(CLIPCACHE_RECLAIM_AUTOSTART=False)
    def test_disabled(self):
        """Test that autostart can be turned off"""
        self.app_config.ready()
        self.mock_get_runtime.assert_not_called()
