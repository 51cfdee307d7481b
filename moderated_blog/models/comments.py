"""
Comment models for django-moderated-blog.
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from ..conf import blog_settings
from .base import ReviewStatus, Revision


class Comment(models.Model):
    """
    Comment on a post.

    Supports:
    - Threaded replies via parent field
    - Moderation workflow (pending -> approved/rejected)
    - Edits proposed as CommentRevision rows
    """

    post = models.ForeignKey(
        "moderated_blog.Post",
        on_delete=models.CASCADE,
        related_name="comments",
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blog_comments",
    )
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="replies",
    )
    body = models.TextField(max_length=blog_settings.COMMENT_MAX_LENGTH)
    status = models.CharField(
        max_length=20,
        choices=ReviewStatus.choices,
        default=ReviewStatus.PENDING,
        db_index=True,
    )
    idempotency_key = models.UUIDField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="reviewed_blog_comments",
    )

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["post", "status", "created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["author", "idempotency_key"],
                name="moderated_blog_comment_author_key",
            ),
        ]

    def __str__(self):
        return f"Comment by {self.author} on {self.post}"

    @property
    def preview(self):
        """Return truncated body for admin display."""
        if len(self.body) > 100:
            return self.body[:100] + "..."
        return self.body

    @property
    def is_reply(self):
        """Check if this is a reply to another comment."""
        return self.parent_id is not None

    @property
    def is_approved(self):
        return self.status == ReviewStatus.APPROVED

    def can_view(self, actor):
        if self.status == ReviewStatus.APPROVED:
            return True
        if actor is None:
            return False
        return actor.is_admin or actor.id == self.author_id


class CommentRevision(Revision):
    """Proposed edit to a comment body."""

    comment = models.ForeignKey(
        Comment,
        on_delete=models.CASCADE,
        related_name="revisions",
    )

    class Meta(Revision.Meta):
        verbose_name = "Comment revision"

    def __str__(self):
        return f"Revision {self.pk} of comment {self.comment_id} ({self.status})"
