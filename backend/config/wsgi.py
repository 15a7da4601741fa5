"""
WSGI config for the Forum project.

REST only; the WebSocket push channel needs the ASGI application.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_wsgi_application()
