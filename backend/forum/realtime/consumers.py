"""
WebSocket consumer for the forum push channel.

Connection lifecycle:
    Connecting -> Authenticated -> Active -> Closed

Clients connect to ws/forum/?token=<access> and then send commands:
    subscribe_thread, unsubscribe_thread, new_comment, edit_comment,
    delete_comment, vote

Mutations go through forum.services, the same code the REST views use, and
the resulting event is broadcast to every subscriber of the thread,
including the sender. Failures are reported to the sender only.
"""

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.db import DatabaseError
from rest_framework.exceptions import APIException

from .. import services
from ..exceptions import TransientStoreError, ValidationError, error_code, error_message
from . import events
from .auth import TOKEN_INVALID
from .commands import (
    DeleteComment, EditComment, NewComment, SubscribeThread, UnsubscribeThread, Vote,
    decode_command,
)
from .registry import Session, get_session_registry
from .router import FORUM_EVENT, BroadcastRouter

logger = logging.getLogger(__name__)

CLOSE_TOKEN_MISSING = 4001
CLOSE_TOKEN_INVALID = 4002


def _thread_data(thread_id):
    return events.thread_data(services.thread_snapshot(thread_id))


def _new_comment(user, command):
    comment = services.create_comment(
        user, command.thread_id, command.content, command.parent_comment_id
    )
    return comment.thread_id, events.new_comment(comment)


def _edit_comment(user, command):
    comment = services.edit_comment(user, command.comment_id, command.content)
    return comment.thread_id, events.edit_comment(comment)


def _delete_comment(user, command):
    deleted = services.delete_comment(user, command.comment_id)
    return deleted.thread_id, events.delete_comment(deleted)


def _vote(user, command):
    outcome = services.cast_vote(
        user, command.target_type, command.target_id, command.vote_type
    )
    return outcome.thread_id, events.vote_update(outcome)


# command class -> sync mutation returning (thread_id, event)
MUTATIONS = {
    NewComment: _new_comment,
    EditComment: _edit_comment,
    DeleteComment: _delete_comment,
    Vote: _vote,
}


class ForumConsumer(AsyncJsonWebsocketConsumer):
    """
    One instance per connection.

    ``registry`` may be passed through as_asgi() to isolate sessions; by
    default the process-wide registry from the app config is used.
    """
    registry = None

    def __init__(self, *args, registry=None, **kwargs):
        super().__init__(*args, **kwargs)
        if registry is not None:
            self.registry = registry

    async def connect(self):
        if self.registry is None:
            self.registry = get_session_registry()
        self.router = BroadcastRouter(self.registry, self.channel_layer)
        self.session = Session(self.channel_name)

        # Accept first so the client receives the close code
        await self.accept()

        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            code = CLOSE_TOKEN_INVALID if self.scope.get("auth_error") == TOKEN_INVALID \
                else CLOSE_TOKEN_MISSING
            logger.warning("Forum WebSocket rejected (close %s)", code)
            self.session = None
            await self.close(code=code)
            return

        self.session.authenticate(user)
        self.registry.activate(self.session)
        await self.send_json(events.connection_ack())

    async def disconnect(self, close_code):
        if getattr(self, "session", None) is not None:
            self.registry.discard(self.channel_name)
            self.session = None

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        if self.session is None or not self.session.is_active:
            return
        try:
            frame = json.loads(text_data if text_data is not None else bytes_data)
        except (TypeError, ValueError):
            await self.send_error(ValidationError('Invalid JSON frame'))
            return
        await self.receive_json(frame)

    async def receive_json(self, content, **kwargs):
        try:
            command = decode_command(content)
            await self.handle_command(command)
        except APIException as exc:
            logger.info("Forum command rejected for %s: %s", self.session.username, exc)
            await self.send_error(exc)
        except DatabaseError:
            logger.exception("Forum store error while handling a push command")
            await self.send_error(TransientStoreError())

    async def handle_command(self, command):
        if isinstance(command, SubscribeThread):
            await self.subscribe_thread(command.thread_id)
        elif isinstance(command, UnsubscribeThread):
            self.session.unsubscribe(command.thread_id)
        else:
            mutation = MUTATIONS[type(command)]
            thread_id, event = await database_sync_to_async(mutation)(
                self.scope["user"], command
            )
            await self.router.broadcast(thread_id, event)

    async def subscribe_thread(self, thread_id):
        # Subscribe before reading so no broadcast between the read and the
        # subscription is missed; the snapshot is sent to this client only.
        self.session.subscribe(thread_id)
        try:
            snapshot = await database_sync_to_async(_thread_data)(thread_id)
        except Exception:
            self.session.unsubscribe(thread_id)
            raise
        await self.send_json(snapshot)

    async def send_error(self, exc):
        await self.send_json(events.error(error_code(exc), error_message(exc)))

    # ---- Channel layer handlers ----
    # Called for messages sent by BroadcastRouter. Method name matches FORUM_EVENT.

    async def forum_event(self, event):
        """Push a broadcast event to the client."""
        try:
            await self.send_json(event["payload"])
        except Exception:
            logger.exception("Failed to push %s to %s", FORUM_EVENT, self.channel_name)
