"""
Tests for the entity store and shared forum services.

Key test coverage:
1. Deleting a comment with N replies drops comment_count by exactly N+1
2. Thread deletion removes every comment
3. Votes are applied as set membership against the database
4. Tags are normalized on save
5. Authorization and locked-thread rules
6. Parent references never form a cycle
"""
from unittest import mock

from django.contrib.auth.models import User
from django.test import SimpleTestCase, TestCase

from forum import services, store
from forum.exceptions import AuthorizationError, NotFoundError, ValidationError
from forum.models import Comment, Thread, normalize_tags


class NormalizeTagsTest(SimpleTestCase):

    def test_strips_dedupes_and_keeps_order(self):
        self.assertEqual(
            normalize_tags([' ferrari', 'monza ', '', '  ', 'ferrari', 'Monza', 'monza']),
            ['ferrari', 'monza', 'Monza'],
        )

    def test_none(self):
        self.assertEqual(normalize_tags(None), [])


class ForumStoreTestBase(TestCase):

    def setUp(self):
        self.author = User.objects.create_user(username='author', password='testpass123')
        self.other = User.objects.create_user(username='other', password='testpass123')
        self.thread = services.create_thread(
            self.author, 'Race recap', 'What a race', 'Race Discussion', ['recap', ' recap', '']
        )


class ThreadStoreTest(ForumStoreTestBase):

    def test_tags_normalized_on_save(self):
        self.thread.refresh_from_db()
        self.assertEqual(self.thread.tags, ['recap'])

    def test_snapshot_increments_views(self):
        thread, forest = services.thread_snapshot(self.thread.pk, count_view=True)
        self.assertEqual(thread.views, 1)
        self.assertEqual(forest, [])
        thread, _ = services.thread_snapshot(self.thread.pk)
        self.assertEqual(thread.views, 1)

    def test_missing_thread(self):
        with self.assertRaises(NotFoundError):
            services.thread_snapshot(12345)

    def test_only_author_updates_thread(self):
        with self.assertRaises(AuthorizationError):
            services.update_thread(self.other, self.thread.pk, title='Hijacked')
        thread = services.update_thread(self.author, self.thread.pk, title='Race recap (edited)')
        self.assertEqual(thread.title, 'Race recap (edited)')

    def test_delete_thread_cascades_to_comments(self):
        root = services.create_comment(self.other, self.thread.pk, 'root')
        services.create_comment(self.other, self.thread.pk, 'reply', root.pk)

        with self.assertRaises(AuthorizationError):
            services.delete_thread(self.other, self.thread.pk)

        removed = services.delete_thread(self.author, self.thread.pk)
        self.assertEqual(removed, 2)
        self.assertFalse(Thread.objects.filter(pk=self.thread.pk).exists())
        self.assertFalse(Comment.objects.exists())


class CommentStoreTest(ForumStoreTestBase):

    def comment_count(self):
        return Thread.objects.get(pk=self.thread.pk).comment_count

    def test_create_comment_updates_counter_and_activity(self):
        before = Thread.objects.get(pk=self.thread.pk).last_activity
        services.create_comment(self.other, self.thread.pk, 'First!')
        thread = Thread.objects.get(pk=self.thread.pk)
        self.assertEqual(thread.comment_count, 1)
        self.assertGreaterEqual(thread.last_activity, before)

    def test_locked_thread_rejects_comments(self):
        Thread.objects.filter(pk=self.thread.pk).update(is_locked=True)
        with self.assertRaises(AuthorizationError):
            services.create_comment(self.other, self.thread.pk, 'Too late')
        self.assertEqual(self.comment_count(), 0)

    def test_parent_on_other_thread_rejected(self):
        other_thread = services.create_thread(self.other, 'Other', 'x', 'General')
        foreign = services.create_comment(self.other, other_thread.pk, 'elsewhere')
        with self.assertRaises(ValidationError):
            services.create_comment(self.other, self.thread.pk, 'reply', foreign.pk)

    def test_reply_to_deleted_parent_is_kept_as_orphan(self):
        parent = services.create_comment(self.other, self.thread.pk, 'parent')
        services.delete_comment(self.other, parent.pk)

        orphan = services.create_comment(self.author, self.thread.pk, 'late reply', parent.pk)
        self.assertEqual(orphan.parent_id, parent.pk)

        _, forest = services.thread_snapshot(self.thread.pk)
        self.assertEqual([node.id for node in forest], [orphan.pk])
        self.assertEqual(self.comment_count(), 1)

    def test_reply_to_unissued_parent_rejected(self):
        seed = services.create_comment(self.other, self.thread.pk, 'seed')

        with self.assertRaises(ValidationError):
            services.create_comment(self.author, self.thread.pk, 'from the future', seed.pk + 1000)

        self.assertEqual(list(Comment.objects.values_list('pk', flat=True)), [seed.pk])
        self.assertEqual(self.comment_count(), 1)

    def test_parent_loop_does_not_hang_delete(self):
        a = services.create_comment(self.other, self.thread.pk, 'a')
        b = services.create_comment(self.other, self.thread.pk, 'b', a.pk)
        # Force a parent loop directly in the table
        Comment.objects.filter(pk=a.pk).update(parent_id=b.pk)

        self.assertEqual(store.descendant_ids(Comment.objects.get(pk=a.pk)), [b.pk])

        deleted = services.delete_comment(self.other, a.pk)
        self.assertEqual(deleted.removed_ids, [a.pk, b.pk])
        self.assertEqual(self.comment_count(), 0)

    def test_delete_skips_replies_already_removed(self):
        parent = services.create_comment(self.other, self.thread.pk, 'parent')
        reply = services.create_comment(self.author, self.thread.pk, 'reply', parent.pk)
        stale = store.descendant_ids(parent)

        # The reply is deleted after the parent's delete read its descendants
        services.delete_comment(self.author, reply.pk)
        self.assertEqual(self.comment_count(), 1)

        with mock.patch('forum.store.descendant_ids', return_value=stale):
            deleted = services.delete_comment(self.other, parent.pk)

        self.assertEqual(deleted.removed_ids, [parent.pk])
        self.assertEqual(self.comment_count(), 0)

    def test_delete_subtree_decrements_by_n_plus_one(self):
        # root
        #   a
        #     a1
        #     a2
        #   b
        # sibling (kept)
        root = services.create_comment(self.other, self.thread.pk, 'root')
        a = services.create_comment(self.author, self.thread.pk, 'a', root.pk)
        services.create_comment(self.author, self.thread.pk, 'a1', a.pk)
        services.create_comment(self.other, self.thread.pk, 'a2', a.pk)
        services.create_comment(self.other, self.thread.pk, 'b', root.pk)
        sibling = services.create_comment(self.other, self.thread.pk, 'sibling')
        self.assertEqual(self.comment_count(), 6)

        deleted = services.delete_comment(self.other, root.pk)

        self.assertEqual(len(deleted.removed_ids), 5)
        self.assertEqual(deleted.removed_ids[0], root.pk)
        self.assertEqual(self.comment_count(), 1)
        self.assertEqual(list(Comment.objects.values_list('pk', flat=True)), [sibling.pk])

    def test_only_author_edits_and_deletes(self):
        comment = services.create_comment(self.other, self.thread.pk, 'mine')
        with self.assertRaises(AuthorizationError):
            services.edit_comment(self.author, comment.pk, 'not yours')
        with self.assertRaises(AuthorizationError):
            services.delete_comment(self.author, comment.pk)

        edited = services.edit_comment(self.other, comment.pk, 'mine, edited')
        self.assertTrue(edited.is_edited)
        self.assertEqual(edited.body, 'mine, edited')


class VoteStoreTest(ForumStoreTestBase):

    def test_like_then_like_again_removes(self):
        outcome = services.cast_vote(self.other, 'thread', self.thread.pk, 'like')
        self.assertEqual((outcome.action, outcome.score), ('liked', 1))

        outcome = services.cast_vote(self.other, 'thread', self.thread.pk, 'like')
        self.assertEqual((outcome.action, outcome.score), ('removed', 0))
        self.assertFalse(self.thread.liked_by.exists())

    def test_switch_keeps_sets_exclusive(self):
        services.cast_vote(self.other, 'thread', self.thread.pk, 'like')
        outcome = services.cast_vote(self.other, 'thread', self.thread.pk, 'dislike')
        self.assertEqual((outcome.likes, outcome.dislikes, outcome.score), (0, 1, -1))
        self.assertFalse(self.thread.liked_by.filter(pk=self.other.pk).exists())
        self.assertTrue(self.thread.disliked_by.filter(pk=self.other.pk).exists())

    def test_comment_vote_reports_thread(self):
        comment = services.create_comment(self.author, self.thread.pk, 'vote me')
        outcome = services.cast_vote(self.other, 'comment', comment.pk, 'dislike')
        self.assertEqual(outcome.thread_id, self.thread.pk)
        self.assertEqual(outcome.score, -1)

    def test_invalid_vote_input(self):
        with self.assertRaises(ValidationError):
            services.cast_vote(self.other, 'post', self.thread.pk, 'like')
        with self.assertRaises(ValidationError):
            services.cast_vote(self.other, 'thread', self.thread.pk, 'up')
        with self.assertRaises(NotFoundError):
            services.cast_vote(self.other, 'comment', 999, 'like')


class ThreadListingTest(ForumStoreTestBase):

    def test_popular_sort_uses_score_then_newest(self):
        second = services.create_thread(self.author, 'Second', 'b', 'News', ['news'])
        third = services.create_thread(self.author, 'Third', 'c', 'News')
        services.cast_vote(self.other, 'thread', self.thread.pk, 'like')
        services.cast_vote(self.author, 'thread', third.pk, 'dislike')

        popular = list(store.list_threads(sort='popular'))
        self.assertEqual([t.pk for t in popular], [self.thread.pk, second.pk, third.pk])

        newest = list(store.list_threads())
        self.assertEqual([t.pk for t in newest], [third.pk, second.pk, self.thread.pk])

    def test_filters(self):
        news = services.create_thread(self.author, 'News', 'b', 'News', ['news'])
        self.assertEqual([t.pk for t in store.list_threads(category='News')], [news.pk])
        self.assertEqual([t.pk for t in store.list_threads(tag='recap')], [self.thread.pk])
