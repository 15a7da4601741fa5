"""
Session registry for live WebSocket connections.

A Session is one authenticated connection: the resolved user and the set of
thread ids it is subscribed to. The registry is an ordinary object so each
test (or each ASGI app) can own an isolated one; the app config holds the
instance the running process uses.

Only the registry adds and removes sessions. Only the consumer that owns a
session changes its subscriptions. REST views read the registry from worker
threads while consumers update it from the event loop, hence the lock.
"""
import enum
import logging
import threading

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    CONNECTING = 'connecting'
    AUTHENTICATED = 'authenticated'
    ACTIVE = 'active'
    CLOSED = 'closed'


class Session:

    def __init__(self, channel_name):
        self.channel_name = channel_name
        self.state = SessionState.CONNECTING
        self.user_id = None
        self.username = None
        self._subscriptions = set()

    def __repr__(self):
        return f"<Session {self.channel_name} user={self.user_id} state={self.state.value}>"

    def authenticate(self, user):
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"Cannot authenticate a session in state {self.state.value}")
        self.user_id = user.pk
        self.username = user.get_username()
        self.state = SessionState.AUTHENTICATED

    @property
    def is_active(self):
        return self.state is SessionState.ACTIVE

    @property
    def subscriptions(self):
        return frozenset(self._subscriptions)

    def subscribe(self, thread_id):
        self._subscriptions.add(thread_id)

    def unsubscribe(self, thread_id):
        self._subscriptions.discard(thread_id)

    def is_subscribed(self, thread_id):
        return thread_id in self._subscriptions


class SessionRegistry:

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions = {}

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, channel_name):
        with self._lock:
            return channel_name in self._sessions

    def activate(self, session):
        """Register an authenticated session and mark it Active."""
        if session.state is not SessionState.AUTHENTICATED:
            raise RuntimeError(f"Cannot activate a session in state {session.state.value}")
        with self._lock:
            self._sessions[session.channel_name] = session
            session.state = SessionState.ACTIVE
        logger.info("Forum session opened for %s (%s)", session.username, session.channel_name)
        return session

    def discard(self, channel_name):
        """Drop a session and its subscriptions. Unknown names are ignored."""
        with self._lock:
            session = self._sessions.pop(channel_name, None)
        if session is None:
            return None
        session.state = SessionState.CLOSED
        logger.info("Forum session closed for %s (%s)", session.username, channel_name)
        return session

    def get(self, channel_name):
        with self._lock:
            return self._sessions.get(channel_name)

    def subscribers(self, thread_id):
        """Channel names of Active sessions subscribed to ``thread_id``."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [
            session.channel_name for session in sessions
            if session.is_active and session.is_subscribed(thread_id)
        ]


def get_session_registry():
    """The registry owned by the running process (created in ForumConfig.ready)."""
    from django.apps import apps

    return apps.get_app_config('forum').session_registry
