"""
Root URL configuration.

HTTP routes only; WebSocket routes live in forum/realtime/routing.py.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('forum.urls')),
]
