"""
Django settings for clipcache project.

Most values can be overridden with environment variables of the same name.

For more information on this file, see
https://docs.djangoproject.com/en/stable/topics/settings/
"""

import os
import sys
from pathlib import Path


def env_bool(name, default):
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes', 'on')


def env_int(name, default):
    return int(os.environ.get(name, default))


BASE_DIR = Path(__file__).resolve().parent.parent

TESTING = 'test' in sys.argv or 'pytest' in sys.modules

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-clipcache-dev-key')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]
if TESTING:
    ALLOWED_HOSTS.append('testserver')

INSTALLED_APPS = [
    'artifacts',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'clipcache.urls'

WSGI_APPLICATION = 'clipcache.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Logging

CLIPCACHE_LOG_LEVEL = os.environ.get('CLIPCACHE_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'artifacts': {
            'handlers': ['console'],
            'level': 'WARNING' if TESTING else CLIPCACHE_LOG_LEVEL,
            'propagate': False,
        },
        'apscheduler': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}


# Artifact storage

CLIPCACHE_STORE_DIR = os.environ.get('CLIPCACHE_STORE_DIR', str(BASE_DIR / 'temp'))
# Empty means <store>/scratch
CLIPCACHE_SCRATCH_DIR = os.environ.get('CLIPCACHE_SCRATCH_DIR', '')

# Artifact lifetime and reclamation (seconds)
CLIPCACHE_TTL_SECONDS = env_int('CLIPCACHE_TTL_SECONDS', 30 * 60)
CLIPCACHE_RECLAIM_INTERVAL = env_int('CLIPCACHE_RECLAIM_INTERVAL', 5 * 60)
CLIPCACHE_RECLAIM_AUTOSTART = env_bool('CLIPCACHE_RECLAIM_AUTOSTART', not TESTING)
# Synthetic lifetime for files found on disk without a registry entry
CLIPCACHE_ORPHAN_TTL = env_int('CLIPCACHE_ORPHAN_TTL', 24 * 60 * 60)
CLIPCACHE_SCRATCH_TTL = env_int('CLIPCACHE_SCRATCH_TTL', 60 * 60)

# After serving, re-check the artifact and delete it if it expires within the grace window
CLIPCACHE_SERVE_RECHECK_DELAY = env_int('CLIPCACHE_SERVE_RECHECK_DELAY', 10)
CLIPCACHE_SERVE_GRACE = env_int('CLIPCACHE_SERVE_GRACE', 5 * 60)


# External tools

CLIPCACHE_YTDLP_BINARY = os.environ.get('CLIPCACHE_YTDLP_BINARY', 'yt-dlp')
# Empty means: FFMPEG_PATH, then common Homebrew locations, then ffmpeg on PATH
CLIPCACHE_FFMPEG_BINARY = os.environ.get('CLIPCACHE_FFMPEG_BINARY', '')

CLIPCACHE_DOWNLOAD_TIMEOUT = env_int('CLIPCACHE_DOWNLOAD_TIMEOUT', 300)
# Platforms that need retry/backoff flags
CLIPCACHE_DOWNLOAD_TIMEOUT_SLOW = env_int('CLIPCACHE_DOWNLOAD_TIMEOUT_SLOW', 600)
CLIPCACHE_TRANSCODE_TIMEOUT = env_int('CLIPCACHE_TRANSCODE_TIMEOUT', 300)
CLIPCACHE_MAX_BUFFER = env_int('CLIPCACHE_MAX_BUFFER', 10 * 1024 * 1024)

# 0 means no limit on concurrent pipeline runs
CLIPCACHE_MAX_CONCURRENT_ACQUISITIONS = env_int('CLIPCACHE_MAX_CONCURRENT_ACQUISITIONS', 0)

CLIPCACHE_VIDEO_MAX_HEIGHT = env_int('CLIPCACHE_VIDEO_MAX_HEIGHT', 720)

CLIPCACHE_FFMPEG_ARGS_AUDIO = os.environ.get(
    'CLIPCACHE_FFMPEG_ARGS_AUDIO',
    '-vn -acodec libmp3lame -b:a 192k',
)
# {max_height} is filled from CLIPCACHE_VIDEO_MAX_HEIGHT
CLIPCACHE_FFMPEG_ARGS_VIDEO = os.environ.get(
    'CLIPCACHE_FFMPEG_ARGS_VIDEO',
    '-vf "scale=-2:\'min({max_height},ih)\'" -c:v libx264 -preset veryfast -crf 23 '
    '-c:a aac -b:a 128k -movflags +faststart',
)
