from django.apps import AppConfig


class ForumConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'forum'

    def ready(self):
        from .realtime.registry import SessionRegistry

        # Live WebSocket sessions of this process
        self.session_registry = SessionRegistry()
