"""
Tests for the session registry, broadcast router and command decoding.
"""
import asyncio
from types import SimpleNamespace

from asgiref.sync import async_to_sync
from django.test import SimpleTestCase

from forum.exceptions import ValidationError
from forum.realtime.commands import (
    DeleteComment, EditComment, NewComment, SubscribeThread, UnsubscribeThread, Vote,
    decode_command,
)
from forum.realtime.registry import Session, SessionRegistry, SessionState
from forum.realtime import router as router_module
from forum.realtime.router import FORUM_EVENT, BroadcastRouter


def make_user(pk, username):
    return SimpleNamespace(pk=pk, get_username=lambda: username)


def active_session(registry, channel_name, user_id=1, threads=()):
    session = Session(channel_name)
    session.authenticate(make_user(user_id, f'user{user_id}'))
    registry.activate(session)
    for thread_id in threads:
        session.subscribe(thread_id)
    return session


class SessionRegistryTest(SimpleTestCase):

    def test_state_machine(self):
        registry = SessionRegistry()
        session = Session('chan-1')
        self.assertEqual(session.state, SessionState.CONNECTING)

        with self.assertRaises(RuntimeError):
            registry.activate(session)

        session.authenticate(make_user(7, 'lewis'))
        self.assertEqual(session.state, SessionState.AUTHENTICATED)
        self.assertEqual((session.user_id, session.username), (7, 'lewis'))

        registry.activate(session)
        self.assertEqual(session.state, SessionState.ACTIVE)
        self.assertIn('chan-1', registry)

        registry.discard('chan-1')
        self.assertEqual(session.state, SessionState.CLOSED)
        self.assertNotIn('chan-1', registry)
        self.assertEqual(len(registry), 0)

    def test_subscribers(self):
        registry = SessionRegistry()
        active_session(registry, 'a', threads=[1, 2])
        active_session(registry, 'b', threads=[2])
        active_session(registry, 'c')

        self.assertEqual(sorted(registry.subscribers(2)), ['a', 'b'])
        self.assertEqual(registry.subscribers(1), ['a'])
        self.assertEqual(registry.subscribers(3), [])

    def test_unsubscribe_and_discard_drop_subscriptions(self):
        registry = SessionRegistry()
        session = active_session(registry, 'a', threads=[1, 2])
        session.unsubscribe(1)
        session.unsubscribe(42)
        self.assertEqual(session.subscriptions, {2})

        registry.discard('a')
        self.assertEqual(registry.subscribers(2), [])
        self.assertIsNone(registry.discard('a'))

    def test_registries_are_isolated(self):
        first, second = SessionRegistry(), SessionRegistry()
        active_session(first, 'a', threads=[1])
        self.assertEqual(second.subscribers(1), [])


class FakeChannelLayer:

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send(self, channel_name, message):
        if channel_name in self.failing:
            raise ConnectionResetError('socket half-closed')
        self.sent.append((channel_name, message))


class BroadcastRouterTest(SimpleTestCase):

    def setUp(self):
        self.registry = SessionRegistry()
        active_session(self.registry, 'a', threads=[1])
        active_session(self.registry, 'b', threads=[1])
        active_session(self.registry, 'c', threads=[1])
        active_session(self.registry, 'd', threads=[2])

    def test_delivers_to_subscribers_only(self):
        layer = FakeChannelLayer()
        router = BroadcastRouter(self.registry, layer)

        delivered = async_to_sync(router.broadcast)(1, {'type': 'vote_update', 'score': 3})

        self.assertEqual(delivered, 3)
        self.assertEqual(sorted(name for name, _ in layer.sent), ['a', 'b', 'c'])
        for _, message in layer.sent:
            self.assertEqual(message, {
                'type': FORUM_EVENT,
                'payload': {'type': 'vote_update', 'score': 3},
            })

    def test_failing_session_does_not_block_others(self):
        layer = FakeChannelLayer(failing={'b'})
        router = BroadcastRouter(self.registry, layer)

        with self.assertLogs('forum.realtime.router', level='ERROR'):
            delivered = router.broadcast_sync(1, {'type': 'new_comment'})

        self.assertEqual(delivered, 2)
        self.assertEqual(sorted(name for name, _ in layer.sent), ['a', 'c'])

    def test_per_session_order_matches_call_order(self):
        layer = FakeChannelLayer()
        router = BroadcastRouter(self.registry, layer)

        for n in range(5):
            router.broadcast_sync(1, {'type': 'vote_update', 'n': n})

        received = [m['payload']['n'] for name, m in layer.sent if name == 'a']
        self.assertEqual(received, [0, 1, 2, 3, 4])

    def test_task_on_running_loop_is_held_until_done(self):
        layer = FakeChannelLayer()
        router = BroadcastRouter(self.registry, layer)

        @async_to_sync
        async def run_test():
            self.assertIsNone(router.broadcast_sync(1, {'type': 'new_comment'}))
            pending = set(router_module._pending_broadcasts)
            self.assertEqual(len(pending), 1)

            await asyncio.wait(pending)
            await asyncio.sleep(0)
            self.assertFalse(pending & router_module._pending_broadcasts)

        run_test()
        self.assertEqual(sorted(name for name, _ in layer.sent), ['a', 'b', 'c'])


class DecodeCommandTest(SimpleTestCase):

    def test_all_command_types(self):
        self.assertEqual(
            decode_command({'type': 'subscribe_thread', 'threadId': 3}), SubscribeThread(3)
        )
        self.assertEqual(
            decode_command({'type': 'unsubscribe_thread', 'threadId': '3'}), UnsubscribeThread(3)
        )
        self.assertEqual(
            decode_command({'type': 'new_comment', 'threadId': 3, 'content': 'hi'}),
            NewComment(3, 'hi', None)
        )
        self.assertEqual(
            decode_command({
                'type': 'new_comment', 'threadId': 3, 'content': 'hi', 'parentCommentId': 9
            }),
            NewComment(3, 'hi', 9)
        )
        self.assertEqual(
            decode_command({'type': 'edit_comment', 'commentId': 9, 'content': 'x'}),
            EditComment(9, 'x')
        )
        self.assertEqual(
            decode_command({'type': 'delete_comment', 'commentId': 9}), DeleteComment(9)
        )
        self.assertEqual(
            decode_command({
                'type': 'vote', 'targetType': 'comment', 'targetId': 9, 'voteType': 'dislike'
            }),
            Vote('comment', 9, 'dislike')
        )

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValidationError):
            decode_command({'type': 'shout', 'threadId': 3})
        with self.assertRaises(ValidationError):
            decode_command({'threadId': 3})

    def test_invalid_payload_rejected(self):
        with self.assertRaises(ValidationError):
            decode_command({'type': 'subscribe_thread'})
        with self.assertRaises(ValidationError):
            decode_command({'type': 'vote', 'targetType': 'thread', 'targetId': 1, 'voteType': 'up'})
        with self.assertRaises(ValidationError):
            decode_command({'type': 'new_comment', 'threadId': 1, 'content': ''})

    def test_non_object_frame_rejected(self):
        with self.assertRaises(ValidationError):
            decode_command(['subscribe_thread', 1])
