"""
Client -> server frames decoded into typed commands.

The set of commands is closed: every frame type maps to exactly one command
class, and a frame whose ``type`` is not in COMMANDS is rejected with a
ValidationError instead of being ignored.
"""
from dataclasses import dataclass
from typing import Optional

from rest_framework import serializers

from ..exceptions import ValidationError
from ..serializers import VoteSerializer


class ThreadRefSerializer(serializers.Serializer):
    threadId = serializers.IntegerField()


class NewCommentSerializer(serializers.Serializer):
    threadId = serializers.IntegerField()
    content = serializers.CharField()
    parentCommentId = serializers.IntegerField(required=False, allow_null=True)


class EditCommentSerializer(serializers.Serializer):
    commentId = serializers.IntegerField()
    content = serializers.CharField()


class CommentRefSerializer(serializers.Serializer):
    commentId = serializers.IntegerField()


@dataclass(frozen=True)
class SubscribeThread:
    type = 'subscribe_thread'
    thread_id: int

    @classmethod
    def from_payload(cls, data):
        return cls(thread_id=data['threadId'])


@dataclass(frozen=True)
class UnsubscribeThread:
    type = 'unsubscribe_thread'
    thread_id: int

    @classmethod
    def from_payload(cls, data):
        return cls(thread_id=data['threadId'])


@dataclass(frozen=True)
class NewComment:
    type = 'new_comment'
    thread_id: int
    content: str
    parent_comment_id: Optional[int] = None

    @classmethod
    def from_payload(cls, data):
        return cls(
            thread_id=data['threadId'],
            content=data['content'],
            parent_comment_id=data.get('parentCommentId'),
        )


@dataclass(frozen=True)
class EditComment:
    type = 'edit_comment'
    comment_id: int
    content: str

    @classmethod
    def from_payload(cls, data):
        return cls(comment_id=data['commentId'], content=data['content'])


@dataclass(frozen=True)
class DeleteComment:
    type = 'delete_comment'
    comment_id: int

    @classmethod
    def from_payload(cls, data):
        return cls(comment_id=data['commentId'])


@dataclass(frozen=True)
class Vote:
    type = 'vote'
    target_type: str
    target_id: int
    vote_type: str

    @classmethod
    def from_payload(cls, data):
        return cls(
            target_type=data['targetType'],
            target_id=data['targetId'],
            vote_type=data['voteType'],
        )


# frame type -> (command class, payload serializer)
COMMANDS = {
    SubscribeThread.type: (SubscribeThread, ThreadRefSerializer),
    UnsubscribeThread.type: (UnsubscribeThread, ThreadRefSerializer),
    NewComment.type: (NewComment, NewCommentSerializer),
    EditComment.type: (EditComment, EditCommentSerializer),
    DeleteComment.type: (DeleteComment, CommentRefSerializer),
    Vote.type: (Vote, VoteSerializer),
}


def decode_command(frame):
    """Validate a decoded JSON frame and return its command object."""
    if not isinstance(frame, dict):
        raise ValidationError('Frame must be a JSON object')

    frame_type = frame.get('type')
    if frame_type not in COMMANDS:
        raise ValidationError(f'Unknown message type: {frame_type}')

    command_class, serializer_class = COMMANDS[frame_type]
    serializer = serializer_class(data=frame)
    if not serializer.is_valid():
        raise ValidationError(serializer.errors)
    return command_class.from_payload(serializer.validated_data)
