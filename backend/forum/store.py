"""
Entity store: every database read and write of Threads and Comments.

Rules followed here:
1. Counters (views, comment_count) are changed with F() expressions only
2. Vote membership is changed with M2M add/remove while the target row is
   locked, never by rewriting the whole set from application memory
3. Cascading deletes are explicit: delete the descendants, then the node,
   and return what was removed so callers can adjust counters
"""
import logging

from django.db import connection, transaction
from django.db.models import Count, F
from django.utils import timezone

from .exceptions import NotFoundError
from .models import Comment, Thread
from .votes import apply_vote as compute_vote

logger = logging.getLogger(__name__)

THREAD = 'thread'
COMMENT = 'comment'
TARGET_MODELS = {
    THREAD: Thread,
    COMMENT: Comment,
}

SORT_NEWEST = 'newest'
SORT_POPULAR = 'popular'
SORT_LAST_ACTIVITY = 'lastActivity'
SORT_MOST_VIEWS = 'mostViews'
THREAD_ORDERINGS = {
    SORT_NEWEST: ('-created_at', '-id'),
    SORT_POPULAR: ('-score', '-created_at', '-id'),
    SORT_LAST_ACTIVITY: ('-last_activity', '-id'),
    SORT_MOST_VIEWS: ('-views', '-created_at', '-id'),
}


def thread_queryset():
    """Threads with author joined and vote sets prefetched."""
    return Thread.objects.select_related('author').prefetch_related(
        'liked_by', 'disliked_by'
    )


def comment_queryset():
    return Comment.objects.select_related('author').prefetch_related(
        'liked_by', 'disliked_by'
    )


def list_threads(sort=SORT_NEWEST, category=None, tag=None):
    """
    Return threads for listing.

    The popular sort annotates the same score formula used everywhere else:
    COUNT(liked_by) - COUNT(disliked_by).
    """
    queryset = thread_queryset()
    if category:
        queryset = queryset.filter(category=category)
    if tag:
        if connection.features.supports_json_field_contains:
            queryset = queryset.filter(tags__contains=[tag])
        else:
            matching = [
                pk for pk, tags in Thread.objects.values_list('pk', 'tags')
                if tag in (tags or [])
            ]
            queryset = queryset.filter(pk__in=matching)
    if sort == SORT_POPULAR:
        queryset = queryset.annotate(
            like_total=Count('liked_by', distinct=True),
            dislike_total=Count('disliked_by', distinct=True),
        ).annotate(score=F('like_total') - F('dislike_total'))
    return queryset.order_by(*THREAD_ORDERINGS.get(sort, THREAD_ORDERINGS[SORT_NEWEST]))


def get_thread(thread_id, for_update=False):
    queryset = Thread.objects.select_for_update() if for_update else thread_queryset()
    try:
        return queryset.get(pk=thread_id)
    except Thread.DoesNotExist:
        raise NotFoundError('Thread not found')


def get_comment(comment_id, for_update=False):
    queryset = Comment.objects.select_for_update() if for_update else comment_queryset()
    try:
        return queryset.get(pk=comment_id)
    except Comment.DoesNotExist:
        raise NotFoundError('Comment not found')


def comments_for_thread(thread_id):
    """All comments of a thread in ONE query, oldest first."""
    return list(comment_queryset().filter(thread_id=thread_id).order_by('created_at', 'id'))


def increment_views(thread_id):
    updated = Thread.objects.filter(pk=thread_id).update(views=F('views') + 1)
    if not updated:
        raise NotFoundError('Thread not found')


def create_thread(author, title, body, category, tags=None):
    return Thread.objects.create(
        author=author,
        title=title,
        body=body,
        category=category,
        tags=tags or [],
    )


def update_thread(thread, **fields):
    for name, value in fields.items():
        setattr(thread, name, value)
    thread.save()
    return thread


@transaction.atomic
def add_comment(thread_id, author, body, parent_id=None):
    """
    Insert a comment and bump its thread's counter and last_activity.

    Both writes share one transaction so comment_count cannot drift.
    """
    comment = Comment.objects.create(
        thread_id=thread_id,
        author=author,
        body=body,
        parent_id=parent_id,
    )
    Thread.objects.filter(pk=thread_id).update(
        comment_count=F('comment_count') + 1,
        last_activity=timezone.now(),
    )
    return comment


def update_comment(comment, body):
    comment.body = body
    comment.is_edited = True
    comment.save(update_fields=['body', 'is_edited', 'updated_at'])
    return comment


def descendant_ids(comment):
    """
    Ids of every reply below ``comment``, at any depth.

    Fetches (id, parent_id) for the whole thread in ONE query and walks the
    adjacency list in memory.
    """
    children = {}
    for pk, parent_id in Comment.objects.filter(
        thread_id=comment.thread_id
    ).values_list('pk', 'parent_id'):
        children.setdefault(parent_id, []).append(pk)

    found = []
    seen = {comment.pk}
    frontier = [comment.pk]
    while frontier:
        next_frontier = []
        for pk in frontier:
            for child_pk in children.get(pk, []):
                if child_pk in seen:
                    continue
                seen.add(child_pk)
                found.append(child_pk)
                next_frontier.append(child_pk)
        frontier = next_frontier
    return found


def _delete_comments(queryset):
    """Delete ``queryset`` and return the number of Comment rows removed."""
    _, per_model = queryset.delete()
    return per_model.get(Comment._meta.label, 0)


@transaction.atomic
def delete_comment_tree(comment):
    """
    Delete a comment and all of its replies.

    Step 1 locks the descendants that still exist, step 2 deletes them, step
    3 the node itself. A reply removed by a concurrent delete is skipped, and
    the thread's comment_count is decremented by the rows actually deleted.
    Returns the removed ids, the deleted comment's id first.
    """
    descendants = descendant_ids(comment)
    present = set()
    if descendants:
        present = set(
            Comment.objects.select_for_update().filter(
                pk__in=descendants
            ).values_list('pk', flat=True)
        )

    deleted = 0
    if present:
        deleted += _delete_comments(Comment.objects.filter(pk__in=present))
    root_deleted = _delete_comments(Comment.objects.filter(pk=comment.pk))
    deleted += root_deleted

    removed = [pk for pk in descendants if pk in present]
    if root_deleted:
        removed.insert(0, comment.pk)

    if deleted:
        Thread.objects.filter(pk=comment.thread_id).update(
            comment_count=F('comment_count') - deleted
        )
    logger.debug("Removed %d comment(s) from thread %s", deleted, comment.thread_id)
    return removed


@transaction.atomic
def delete_thread(thread):
    """Delete every comment of the thread, then the thread. Returns the comment count removed."""
    comments = Comment.objects.filter(thread_id=thread.pk)
    removed = comments.count()
    comments.delete()
    Thread.objects.filter(pk=thread.pk).delete()
    return removed


def get_target(target_type, target_id, for_update=False):
    model = TARGET_MODELS[target_type]
    queryset = model.objects.select_for_update() if for_update else model.objects.all()
    try:
        return queryset.get(pk=target_id)
    except model.DoesNotExist:
        raise NotFoundError(f'{target_type.capitalize()} not found')


@transaction.atomic
def apply_vote(target_type, target_id, user, action):
    """
    Apply a vote against the store.

    The target row is locked for the duration of the transaction, the vote
    engine computes the user's next membership, and only that user's rows
    in the through tables are inserted or deleted.

    Returns (target, VoteResult, like_count, dislike_count).
    """
    target = get_target(target_type, target_id, for_update=True)

    liked = set(target.liked_by.filter(pk=user.pk).values_list('pk', flat=True))
    disliked = set(target.disliked_by.filter(pk=user.pk).values_list('pk', flat=True))
    result = compute_vote(liked, disliked, user.pk, action)

    for members, relation in ((result.liked, target.liked_by), (result.disliked, target.disliked_by)):
        if user.pk in members:
            relation.add(user)
        else:
            relation.remove(user)

    like_count = target.liked_by.count()
    dislike_count = target.disliked_by.count()
    return target, result, like_count, dislike_count
