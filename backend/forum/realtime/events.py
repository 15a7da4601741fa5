"""
Server -> client frame builders.

All builders are sync and may touch the ORM; consumers call them inside
database_sync_to_async.
"""
from ..serializers import CommentSerializer, ThreadDetailSerializer, ThreadSerializer

CONNECTION = 'connection'
THREAD_DATA = 'thread_data'
NEW_COMMENT = 'new_comment'
EDIT_COMMENT = 'edit_comment'
DELETE_COMMENT = 'delete_comment'
VOTE_UPDATE = 'vote_update'
THREAD_CREATED = 'thread_created'
THREAD_UPDATE = 'thread_update'
THREAD_DELETED = 'thread_deleted'
ERROR = 'error'


def connection_ack():
    return {
        'type': CONNECTION,
        'status': 'success',
        'message': 'Connected to forum WebSocket server',
    }


def thread_data(snapshot):
    thread, _ = snapshot
    return {
        'type': THREAD_DATA,
        'threadId': thread.pk,
        'data': ThreadDetailSerializer(snapshot).data,
    }


def new_comment(comment):
    return {
        'type': NEW_COMMENT,
        'threadId': comment.thread_id,
        'data': CommentSerializer(comment).data,
    }


def edit_comment(comment):
    return {
        'type': EDIT_COMMENT,
        'threadId': comment.thread_id,
        'commentId': comment.pk,
        'data': CommentSerializer(comment).data,
    }


def delete_comment(deleted):
    return {
        'type': DELETE_COMMENT,
        'threadId': deleted.thread_id,
        'commentId': deleted.comment_id,
        'removedIds': list(deleted.removed_ids),
    }


def vote_update(outcome):
    return {
        'type': VOTE_UPDATE,
        'targetType': outcome.target_type,
        'targetId': outcome.target_id,
        'threadId': outcome.thread_id,
        'action': outcome.action,
        'score': outcome.score,
        'likes': outcome.likes,
        'dislikes': outcome.dislikes,
    }


def thread_created(thread):
    return {
        'type': THREAD_CREATED,
        'threadId': thread.pk,
        'data': ThreadSerializer(thread).data,
    }


def thread_update(thread):
    return {
        'type': THREAD_UPDATE,
        'threadId': thread.pk,
        'data': ThreadSerializer(thread).data,
    }


def thread_deleted(thread_id):
    return {'type': THREAD_DELETED, 'threadId': thread_id}


def error(code, message):
    return {'type': ERROR, 'code': code, 'message': message}
