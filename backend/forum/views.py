"""
Views for the Forum API.

Every mutating endpoint:
1. Runs the same forum.services operation the WebSocket consumer uses
2. Broadcasts the resulting event to the thread's subscribers AFTER the
   operation has committed, so push clients converge on the REST result

Read endpoints never broadcast. The thread detail view assembles the comment
tree in Python from ONE query and increments the view counter.
"""
from rest_framework import mixins, status, viewsets, views
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response

from . import services, store
from .permissions import IsAuthorOrReadOnly
from .realtime import events
from .realtime.router import get_broadcast_router
from .serializers import (
    CommentCreateSerializer, CommentSerializer, CommentUpdateSerializer,
    ThreadDetailSerializer, ThreadListQuerySerializer, ThreadSerializer,
    VoteSerializer,
)


def broadcast(thread_id, event):
    get_broadcast_router().broadcast_sync(thread_id, event)


class ThreadPagination(PageNumberPagination):
    """Page-number paging; clients may shrink or grow a page with ``limit``."""
    page_size = 20
    page_size_query_param = 'limit'
    max_page_size = 100


class ThreadViewSet(viewsets.ModelViewSet):
    """
    ViewSet for threads.

    List view: supports sort=newest|popular|lastActivity|mostViews,
    category / tag filters and a ``limit`` page size. Popular is ordered by
    score, then newest first.
    Detail view: thread plus the full comment tree.
    """
    serializer_class = ThreadSerializer
    pagination_class = ThreadPagination
    permission_classes = [IsAuthenticatedOrReadOnly, IsAuthorOrReadOnly]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        if self.action == 'list':
            query = ThreadListQuerySerializer(data=self.request.query_params)
            query.is_valid(raise_exception=True)
            return store.list_threads(**query.validated_data)
        return store.thread_queryset()

    def retrieve(self, request, *args, **kwargs):
        """
        Get a thread with its assembled comment tree.

        Side effect: the thread's view counter is incremented.
        """
        snapshot = services.thread_snapshot(int(kwargs['pk']), count_view=True)
        serializer = ThreadDetailSerializer(snapshot, context=self.get_serializer_context())
        return Response(serializer.data)

    def perform_create(self, serializer):
        thread = services.create_thread(self.request.user, **serializer.validated_data)
        serializer.instance = thread
        broadcast(thread.pk, events.thread_created(thread))

    def perform_update(self, serializer):
        thread = services.update_thread(
            self.request.user, serializer.instance.pk, **serializer.validated_data
        )
        serializer.instance = store.get_thread(thread.pk)
        broadcast(thread.pk, events.thread_update(serializer.instance))

    def perform_destroy(self, instance):
        thread_id = instance.pk
        services.delete_thread(self.request.user, thread_id)
        broadcast(thread_id, events.thread_deleted(thread_id))

    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated])
    def comments(self, request, pk=None):
        """Create a comment (optionally a reply via ``parent``) on this thread."""
        serializer = CommentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.create_comment(
            request.user,
            int(pk),
            serializer.validated_data['body'],
            serializer.validated_data.get('parent'),
        )
        broadcast(comment.thread_id, events.new_comment(comment))
        return Response(
            CommentSerializer(comment, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED
        )


class CommentViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for editing and deleting comments.

    Comments are created through ThreadViewSet.comments and read as part of
    the thread detail tree.
    """
    serializer_class = CommentSerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsAuthorOrReadOnly]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        return store.comment_queryset()

    def update(self, request, *args, **kwargs):
        comment = self.get_object()
        serializer = CommentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        comment = services.edit_comment(request.user, comment.pk, serializer.validated_data['body'])
        broadcast(comment.thread_id, events.edit_comment(comment))
        return Response(self.get_serializer(comment).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        """
        Delete a comment and all of its replies.

        The thread's comment_count drops by the number of comments removed.
        """
        comment = self.get_object()
        deleted = services.delete_comment(request.user, comment.pk)
        broadcast(deleted.thread_id, events.delete_comment(deleted))
        return Response(
            {'commentId': deleted.comment_id, 'removedIds': deleted.removed_ids},
            status=status.HTTP_200_OK
        )


class VoteView(views.APIView):
    """
    API endpoint for voting on threads and comments.

    Request body (same shape as the WebSocket ``vote`` frame):
    - targetType: "thread" | "comment"
    - targetId: id of the target
    - voteType: "like" | "dislike"

    Repeating the vote you already hold removes it (toggle-off).
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = VoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        outcome = services.cast_vote(
            request.user,
            serializer.validated_data['targetType'],
            serializer.validated_data['targetId'],
            serializer.validated_data['voteType'],
        )
        event = events.vote_update(outcome)
        broadcast(outcome.thread_id, event)

        data = dict(event)
        data.pop('type')
        return Response(data)
