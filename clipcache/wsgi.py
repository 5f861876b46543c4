"""
WSGI config for the clipcache project.

Exposes the WSGI callable as a module-level variable named ``application``.

For more information:
- https://docs.djangoproject.com/en/stable/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clipcache.settings')

application = get_wsgi_application()
