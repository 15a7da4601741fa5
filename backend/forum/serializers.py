"""
Serializers for the Forum API.

Design decisions:
1. Score is a SerializerMethodField computed from the liked_by / disliked_by
   sets (prefetched by the store), never read from a stored column
2. CommentNodeSerializer renders the forest built by tree.build_comment_tree
3. Input serializers carry the wire names used by the WebSocket protocol
   (threadId, targetType, ...) so REST and push bodies have the same shape
"""
from rest_framework import serializers
from django.contrib.auth.models import User

from .models import Category, Comment, Thread, normalize_tags
from .store import TARGET_MODELS
from .votes import VOTE_ACTIONS


class UserSerializer(serializers.ModelSerializer):
    """Basic user serializer for nested representations."""

    class Meta:
        model = User
        fields = ['id', 'username']


class VoteSetsMixin(serializers.Serializer):
    """liked_by / disliked_by ids plus the score derived from them."""
    liked_by = serializers.SerializerMethodField()
    disliked_by = serializers.SerializerMethodField()
    score = serializers.SerializerMethodField()

    def get_liked_by(self, obj):
        return [user.pk for user in obj.liked_by.all()]

    def get_disliked_by(self, obj):
        return [user.pk for user in obj.disliked_by.all()]

    def get_score(self, obj):
        return len(obj.liked_by.all()) - len(obj.disliked_by.all())


class CommentSerializer(VoteSetsMixin, serializers.ModelSerializer):
    author = UserSerializer(read_only=True)

    class Meta:
        model = Comment
        fields = [
            'id', 'thread', 'parent', 'body', 'author', 'is_edited',
            'created_at', 'updated_at', 'liked_by', 'disliked_by', 'score',
        ]
        read_only_fields = fields


class CommentNodeSerializer(serializers.Serializer):
    """
    Render a CommentNode and its replies recursively.

    The nodes are built by the view in one pass; this serializer never
    touches the database beyond the prefetched vote sets.
    """

    def to_representation(self, node):
        data = CommentSerializer(node.comment, context=self.context).data
        data['replies'] = CommentNodeSerializer(
            node.replies, many=True, context=self.context
        ).data
        return data


class ThreadSerializer(VoteSetsMixin, serializers.ModelSerializer):
    """Thread with author details and derived score."""
    author = UserSerializer(read_only=True)
    tags = serializers.ListField(
        child=serializers.CharField(allow_blank=True, trim_whitespace=False),
        required=False,
    )

    class Meta:
        model = Thread
        fields = [
            'id', 'title', 'body', 'author', 'category', 'tags',
            'liked_by', 'disliked_by', 'score', 'views', 'comment_count',
            'is_pinned', 'is_locked', 'created_at', 'last_activity',
        ]
        read_only_fields = [
            'id', 'author', 'views', 'comment_count', 'is_pinned',
            'is_locked', 'created_at', 'last_activity',
        ]

    def validate_tags(self, value):
        return normalize_tags(value)


class ThreadDetailSerializer(serializers.Serializer):
    """Full snapshot: the thread plus its assembled comment forest."""

    def to_representation(self, snapshot):
        thread, forest = snapshot
        return {
            'thread': ThreadSerializer(thread, context=self.context).data,
            'comments': CommentNodeSerializer(forest, many=True, context=self.context).data,
        }


class CommentCreateSerializer(serializers.Serializer):
    body = serializers.CharField()
    parent = serializers.IntegerField(required=False, allow_null=True)


class CommentUpdateSerializer(serializers.Serializer):
    body = serializers.CharField()


class VoteSerializer(serializers.Serializer):
    """Shared body of the REST vote endpoint and the push ``vote`` frame."""
    targetType = serializers.ChoiceField(choices=list(TARGET_MODELS))
    targetId = serializers.IntegerField()
    voteType = serializers.ChoiceField(choices=list(VOTE_ACTIONS))


class ThreadListQuerySerializer(serializers.Serializer):
    sort = serializers.ChoiceField(
        choices=['newest', 'new', 'popular', 'lastActivity', 'mostViews'],
        required=False,
        default='newest',
    )
    category = serializers.ChoiceField(choices=Category.choices, required=False)
    tag = serializers.CharField(required=False)
