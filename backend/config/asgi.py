"""
ASGI config for the Forum project.

It exposes the ASGI callable as a module-level variable named ``application``.

WebSocket Server:
- Runs on ws://localhost:8000/ws/forum/?token=<access>
- Uses the in-memory channel layer for broadcasting (single process)
"""

import os
from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

# Initialize Django ASGI application early to ensure the AppRegistry
# is populated before importing code that may import ORM models.
django_asgi_app = get_asgi_application()

# Import routing after Django initialization
from forum.realtime.auth import JwtQueryAuthMiddlewareStack  # noqa: E402
from forum.realtime.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        # Django's ASGI application to handle traditional HTTP requests
        "http": django_asgi_app,
        # WebSocket handler with JWT query-string authentication
        "websocket": AllowedHostsOriginValidator(
            JwtQueryAuthMiddlewareStack(
                URLRouter(
                    websocket_urlpatterns
                )
            )
        ),
    }
)
