import logging
import os
import sys
import threading
from pathlib import Path

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


def is_serving_process(argv=None, environ=None):
    """
    Whether this process answers HTTP requests.

    Management commands other than runserver do not, and neither does the
    runserver autoreloader parent (only its child, marked with RUN_MAIN).
    Anything not started through manage.py is taken to be a WSGI server.
    """
    argv = sys.argv if argv is None else argv
    environ = os.environ if environ is None else environ

    program = Path(argv[0]).name if argv else ''
    if program not in ('manage.py', 'django-admin'):
        return True

    command = argv[1] if len(argv) > 1 else None
    if command != 'runserver':
        return False
    if '--noreload' in argv:
        return True
    return environ.get('RUN_MAIN') == 'true'


class ArtifactsConfig(AppConfig):
    name = 'artifacts'
    default_auto_field = 'django.db.models.BigAutoField'

    runtime = None
    _runtime_lock = threading.Lock()

    def get_runtime(self):
        """Build the runtime on first use and keep it for the process lifetime"""
        with self._runtime_lock:
            if self.runtime is None:
                from artifacts.runtime import build_runtime

                self.runtime = build_runtime()
                self.runtime.store.ensure()
            return self.runtime

    def ready(self):
        """Start periodic reclamation in the serving process when configured to"""
        if not settings.CLIPCACHE_RECLAIM_AUTOSTART:
            return
        if not is_serving_process():
            logger.debug('Not a serving process, reclaimer not started')
            return

        from artifacts.service.config import get_reclaim_interval

        runtime = self.get_runtime()
        runtime.reclaimer.start(get_reclaim_interval())
