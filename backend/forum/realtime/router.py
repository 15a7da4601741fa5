"""
Broadcast router: fan a message out to every session subscribed to a thread.

Delivery goes through the channel layer, one send per session channel, so the
consumer owning the socket does the actual write (see ForumConsumer.forum_event).

Delivery is best effort:
- a failing session (full channel, closed socket) is logged and skipped
- errors never reach the caller; the mutation has already committed
- sends of one broadcast are awaited in order, and the channel layer keeps
  per-channel FIFO, so a session sees broadcasts in call order
"""
import asyncio
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

FORUM_EVENT = 'forum.event'

# Broadcasts scheduled on a running loop, held until they finish
_pending_broadcasts = set()


class BroadcastRouter:

    def __init__(self, registry, channel_layer=None):
        self.registry = registry
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    async def broadcast(self, thread_id, message):
        """Deliver ``message`` to subscribers of ``thread_id``. Returns the delivered count."""
        channel_layer = self.channel_layer
        if channel_layer is None:
            logger.warning("No channel_layer available - skipping forum broadcast")
            return 0

        targets = self.registry.subscribers(thread_id)
        delivered = 0
        for channel_name in targets:
            try:
                await channel_layer.send(channel_name, {
                    'type': FORUM_EVENT,
                    'payload': message,
                })
            except Exception:
                logger.exception(
                    "Forum broadcast of %s to %s failed", message.get('type'), channel_name
                )
                continue
            delivered += 1

        logger.debug(
            "Broadcast %s on thread %s to %d/%d session(s)",
            message.get('type'), thread_id, delivered, len(targets),
        )
        return delivered

    def broadcast_sync(self, thread_id, message):
        """
        Safe to call from:
          - sync views (no running loop) -> uses async_to_sync
          - inside an asyncio loop thread -> schedules a task on that loop
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        try:
            if loop and loop.is_running():
                task = loop.create_task(self.broadcast(thread_id, message))
                _pending_broadcasts.add(task)
                task.add_done_callback(_pending_broadcasts.discard)
                return None
            return async_to_sync(self.broadcast)(thread_id, message)
        except Exception:
            # Never let broadcast errors fail the request that committed the change
            logger.exception("Forum broadcast of %s failed", message.get('type'))
            return None


def get_broadcast_router():
    from .registry import get_session_registry

    return BroadcastRouter(get_session_registry())
