from django.contrib import admin
from .models import Thread, Comment


@admin.register(Thread)
class ThreadAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'author', 'category', 'is_pinned', 'is_locked', 'comment_count', 'created_at']
    list_filter = ['category', 'is_pinned', 'is_locked', 'created_at']
    list_editable = ['is_pinned', 'is_locked']
    search_fields = ['title', 'body', 'author__username']
    readonly_fields = ['views', 'comment_count', 'last_activity']
    filter_horizontal = ['liked_by', 'disliked_by']


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'thread', 'parent_id', 'author', 'is_edited', 'created_at', 'body_preview']
    list_filter = ['is_edited', 'created_at']
    search_fields = ['body', 'author__username']
    raw_id_fields = ['thread', 'parent', 'author']

    def body_preview(self, obj):
        return obj.body[:50] + '...' if len(obj.body) > 50 else obj.body
