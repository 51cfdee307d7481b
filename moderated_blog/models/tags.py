"""
Tag request and tag revision models for django-moderated-blog.
"""
from django.conf import settings
from django.db import models
from django.db.models import Q

from ..conf import blog_settings
from .base import ReviewStatus, Reviewable, Revision


class TagRequest(Reviewable):
    """
    A contributor's proposal for a new tag.

    At most one request per slug may be pending; the database enforces it so
    concurrent proposals for the same name cannot both land.
    """

    name = models.CharField(max_length=blog_settings.TAG_NAME_MAX_LENGTH)
    slug = models.SlugField(max_length=blog_settings.TAG_SLUG_MAX_LENGTH, db_index=True)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tag_requests",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Tag request"
        constraints = [
            models.UniqueConstraint(
                fields=["slug"],
                condition=Q(status=ReviewStatus.PENDING),
                name="moderated_blog_one_pending_request_per_slug",
            ),
            models.UniqueConstraint(
                fields=["requested_by", "idempotency_key"],
                name="moderated_blog_tagrequest_author_key",
            ),
        ]

    def __str__(self):
        return f"Request for '{self.name}' ({self.status})"

    @property
    def author_id(self):
        return self.requested_by_id


class TagRevision(Revision):
    """Proposed rename/re-slug of an existing tag: name, slug."""

    tag = models.ForeignKey(
        "moderated_blog.Tag",
        on_delete=models.CASCADE,
        related_name="revisions",
    )

    class Meta(Revision.Meta):
        verbose_name = "Tag revision"

    def __str__(self):
        return f"Revision {self.pk} of tag {self.tag_id} ({self.status})"
