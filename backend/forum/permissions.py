from rest_framework import permissions


class IsAuthorOrReadOnly(permissions.BasePermission):
    """Only the author may change or delete a thread or comment."""
    message = 'Not authorized to modify this item.'

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.author_id == request.user.pk
