"""
WebSocket URL routing for the forum.

Maps the push channel path to its consumer. Authentication is applied around
these patterns in config/asgi.py.
"""

from django.urls import path

from .consumers import ForumConsumer


websocket_urlpatterns = [
    path('ws/forum/', ForumConsumer.as_asgi()),
]
