"""
Forum operations shared by the REST views and the WebSocket consumer.

Each function authorizes the caller, applies the change through the store
and returns the committed objects. Broadcasting is done by the caller once
the function has returned, i.e. after the transaction has committed.
"""
import logging
from dataclasses import dataclass

from django.db import transaction

from . import store
from .exceptions import AuthorizationError, ValidationError
from .models import Comment
from .tree import build_comment_tree
from .votes import VOTE_ACTIONS

logger = logging.getLogger(__name__)


@dataclass
class VoteOutcome:
    target_type: str
    target_id: int
    thread_id: int
    action: str
    likes: int
    dislikes: int

    @property
    def score(self):
        return self.likes - self.dislikes


@dataclass
class DeletedComment:
    comment_id: int
    thread_id: int
    removed_ids: list


def _ensure_author(obj, user, what):
    if obj.author_id != user.pk:
        raise AuthorizationError(f'Not authorized to modify this {what}')


def thread_snapshot(thread_id, count_view=False):
    """
    Return (thread, comment_forest) for a full-thread fetch.

    When ``count_view`` is set the view counter is incremented first, so the
    returned thread already includes this view.
    """
    if count_view:
        store.increment_views(thread_id)
    thread = store.get_thread(thread_id)
    forest = build_comment_tree(store.comments_for_thread(thread_id))
    return thread, forest


def create_thread(user, title, body, category, tags=None):
    thread = store.create_thread(user, title, body, category, tags)
    logger.debug("Thread %s created by user %s", thread.pk, user.pk)
    return thread


@transaction.atomic
def update_thread(user, thread_id, **fields):
    thread = store.get_thread(thread_id, for_update=True)
    _ensure_author(thread, user, 'thread')
    return store.update_thread(thread, **fields)


@transaction.atomic
def delete_thread(user, thread_id):
    thread = store.get_thread(thread_id, for_update=True)
    _ensure_author(thread, user, 'thread')
    removed = store.delete_thread(thread)
    logger.debug("Thread %s deleted with %d comment(s)", thread_id, removed)
    return removed


@transaction.atomic
def create_comment(user, thread_id, body, parent_id=None):
    """
    Add a comment to an unlocked thread.

    A parent that no longer exists is accepted (it was most likely deleted
    while the reply was being written); the reply is shown as a top-level
    orphan. A parent that exists on another thread is rejected.

    A missing parent id at or above the new comment's own id was never
    issued, so it is rejected and the insert is rolled back. Every stored
    parent id is therefore lower than its comment's id, and parent chains
    cannot form a cycle.
    """
    thread = store.get_thread(thread_id, for_update=True)
    if thread.is_locked:
        raise AuthorizationError('Thread is locked')
    parent_exists = False
    if parent_id is not None:
        parent_thread_id = Comment.objects.filter(pk=parent_id).values_list(
            'thread_id', flat=True
        ).first()
        if parent_thread_id is not None and parent_thread_id != thread.pk:
            raise ValidationError({'parent': ['Parent comment belongs to another thread']})
        parent_exists = parent_thread_id is not None
    comment = store.add_comment(thread.pk, user, body, parent_id)
    if parent_id is not None and not parent_exists and parent_id >= comment.pk:
        raise ValidationError({'parent': ['Parent comment does not exist']})
    return store.get_comment(comment.pk)


@transaction.atomic
def edit_comment(user, comment_id, body):
    comment = store.get_comment(comment_id, for_update=True)
    _ensure_author(comment, user, 'comment')
    store.update_comment(comment, body)
    return store.get_comment(comment.pk)


@transaction.atomic
def delete_comment(user, comment_id):
    comment = store.get_comment(comment_id, for_update=True)
    _ensure_author(comment, user, 'comment')
    removed = store.delete_comment_tree(comment)
    return DeletedComment(comment.pk, comment.thread_id, removed)


def cast_vote(user, target_type, target_id, vote_type):
    if target_type not in store.TARGET_MODELS:
        raise ValidationError({'targetType': [f'Unknown target type: {target_type}']})
    if vote_type not in VOTE_ACTIONS:
        raise ValidationError({'voteType': [f'Unknown vote type: {vote_type}']})

    target, result, likes, dislikes = store.apply_vote(target_type, target_id, user, vote_type)
    thread_id = target.pk if target_type == store.THREAD else target.thread_id
    return VoteOutcome(
        target_type=target_type,
        target_id=target.pk,
        thread_id=thread_id,
        action=result.outcome,
        likes=likes,
        dislikes=dislikes,
    )
