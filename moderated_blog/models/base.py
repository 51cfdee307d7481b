"""
Shared status choices and the abstract review/revision models.
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from ..patches import Patch


class PostStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PUBLISHED = "published", "Published"
    REJECTED = "rejected", "Rejected"


class ReviewStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class Reviewable(models.Model):
    """
    Something an admin approves or rejects exactly once.

    Used by tag requests and all revision tables.
    """

    status = models.CharField(
        max_length=20,
        choices=ReviewStatus.choices,
        default=ReviewStatus.PENDING,
        db_index=True,
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    reviewer_note = models.TextField(blank=True)
    idempotency_key = models.UUIDField(null=True, blank=True)

    class Meta:
        abstract = True

    @property
    def is_pending(self):
        return self.status == ReviewStatus.PENDING

    def mark_reviewed(self, status, reviewer_id, note=""):
        """Stamp the review outcome. Caller saves."""
        self.status = status
        self.reviewed_at = timezone.now()
        self.reviewed_by_id = reviewer_id
        if note:
            self.reviewer_note = note
        return ["status", "reviewed_at", "reviewed_by", "reviewer_note"]


class Revision(Reviewable):
    """
    Proposed sparse patch to a canonical row.

    ``patch`` holds only the changed fields; see moderated_blog.patches.
    Concrete subclasses add the foreign key to their parent entity.
    """

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
    )
    patch = models.JSONField(default=dict, blank=True)

    class Meta:
        abstract = True
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["author", "idempotency_key"],
                name="%(app_label)s_%(class)s_author_key",
            ),
        ]

    def get_patch(self):
        return Patch(self.patch)
