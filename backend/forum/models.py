"""
Models for the forum discussion subsystem.

Design decisions:
1. Comments use a self-referential parent reference for threading (no tree library)
2. Votes are M2M membership sets (liked_by / disliked_by), not a Vote table
3. Score is NEVER stored - always computed from the two sets
4. comment_count is a cached counter, only ever changed with F() expressions
   in the same transaction as the comment insert/delete that caused it

The parent reference is stored without a DB constraint: a reply may be
created while its parent is being deleted, and such orphans are shown at
the top level of the tree instead of being lost.
"""
from django.db import models
from django.contrib.auth.models import User


def normalize_tags(tags):
    """Strip tags, drop blanks and duplicates, keep first-occurrence order."""
    seen = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class Category(models.TextChoices):
    GENERAL = 'General', 'General'
    RACE_DISCUSSION = 'Race Discussion', 'Race Discussion'
    TECHNICAL = 'Technical', 'Technical'
    NEWS = 'News', 'News'
    OFF_TOPIC = 'Off-Topic', 'Off-Topic'


class Thread(models.Model):
    """
    A top-level discussion post.

    Indexes:
    - created_at: default (newest) ordering
    - last_activity: "lastActivity" sort
    - category + created_at: category filtering
    """
    title = models.CharField(max_length=200)
    body = models.TextField()
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='forum_threads'
    )
    category = models.CharField(max_length=32, choices=Category.choices)
    tags = models.JSONField(default=list, blank=True)
    liked_by = models.ManyToManyField(User, related_name='liked_threads', blank=True)
    disliked_by = models.ManyToManyField(User, related_name='disliked_threads', blank=True)
    views = models.PositiveIntegerField(default=0)
    comment_count = models.PositiveIntegerField(default=0)
    is_pinned = models.BooleanField(default=False)
    is_locked = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    last_activity = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['category', '-created_at'], name='forum_thread_category_idx'),
        ]

    def save(self, *args, **kwargs):
        self.tags = normalize_tags(self.tags)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Thread {self.id}: {self.title}"


class Comment(models.Model):
    """
    Threaded comment on a Thread.

    Indexes:
    - thread + created_at: fetching every comment of a thread in time order
    - parent: collecting descendants on delete
    """
    thread = models.ForeignKey(
        Thread,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name='replies'
    )
    body = models.TextField()
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='forum_comments'
    )
    liked_by = models.ManyToManyField(User, related_name='liked_comments', blank=True)
    disliked_by = models.ManyToManyField(User, related_name='disliked_comments', blank=True)
    is_edited = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['thread', 'created_at'], name='forum_comment_thread_idx'),
            models.Index(fields=['parent'], name='forum_comment_parent_idx'),
        ]

    def __str__(self):
        return f"Comment {self.id} on Thread {self.thread_id}"
