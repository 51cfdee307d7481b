"""
Post, Tag and tag-link models for django-moderated-blog.
"""
import secrets

from django.conf import settings
from django.db import models
from django.urls import reverse
from django.utils import timezone
from django.utils.text import slugify

from ..conf import blog_settings
from .base import PostStatus, Revision


class Tag(models.Model):
    """
    Approved taxonomy tag.

    The slug is the tag's identity; the name is informational and may use
    different casing.
    """

    name = models.CharField(max_length=blog_settings.TAG_NAME_MAX_LENGTH)
    slug = models.SlugField(max_length=blog_settings.TAG_SLUG_MAX_LENGTH, unique=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_tags",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="approved_tags",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            from ..slugs import generate_tag_slug

            self.slug = generate_tag_slug(self.name)
        super().save(*args, **kwargs)

    def get_absolute_url(self):
        return reverse("moderated_blog:feed") + f"?tags={self.slug}"

    @property
    def post_count(self):
        """Return count of published posts with this tag."""
        return self.posts.filter(status=PostStatus.PUBLISHED).count()


class Post(models.Model):
    """
    Blog post.

    The row holds the last approved content. Edits by non-admins live in
    PostRevision until an admin approves them.
    """

    title = models.CharField(max_length=blog_settings.POST_TITLE_MAX_LENGTH)
    slug = models.SlugField(max_length=blog_settings.POST_SLUG_MAX_LENGTH, unique=True)
    excerpt = models.TextField(null=True, blank=True)
    content = models.TextField(null=True, blank=True)

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blog_posts",
    )
    status = models.CharField(
        max_length=20,
        choices=PostStatus.choices,
        default=PostStatus.PENDING,
        db_index=True,
    )

    tags = models.ManyToManyField(
        Tag,
        through="PostTag",
        related_name="posts",
        blank=True,
    )

    view_count = models.PositiveIntegerField(default=0)
    idempotency_key = models.UUIDField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    published_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "-created_at"]),
            models.Index(fields=["author", "-created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["author", "idempotency_key"],
                name="moderated_blog_post_author_key",
            ),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        # Auto-generate slug from title
        if not self.slug:
            self.slug = self.unique_slug_for(self.title, exclude_pk=self.pk)
        super().save(*args, **kwargs)

    @classmethod
    def unique_slug_for(cls, title, exclude_pk=None):
        """Slug derived from the title, suffixed until unused."""
        max_length = blog_settings.POST_SLUG_MAX_LENGTH
        base_slug = slugify(title)[:max_length].strip("-")
        if not base_slug:
            base_slug = f"post-{secrets.token_hex(3)}"
        slug = base_slug
        counter = 1
        while cls.objects.filter(slug=slug).exclude(pk=exclude_pk).exists():
            suffix = f"-{counter}"
            slug = f"{base_slug[:max_length - len(suffix)]}{suffix}"
            counter += 1
        return slug

    def get_absolute_url(self):
        return reverse("moderated_blog:post_detail", kwargs={"pk": self.pk})

    @property
    def preview(self):
        """Return excerpt, or truncated content for feed display."""
        if self.excerpt:
            return self.excerpt
        content = self.content or ""
        if len(content) > 280:
            return content[:280] + "..."
        return content

    @property
    def is_published(self):
        return self.status == PostStatus.PUBLISHED

    @property
    def pending_tag_slugs(self):
        """Slugs of requested tags that are not real tags yet."""
        return [row.slug for row in self.pending_slugs.all()]

    def set_pending_tag_slugs(self, slugs):
        """Replace the pending slug list wholesale."""
        self.pending_slugs.all().delete()
        PendingTagSlug.objects.bulk_create(
            [PendingTagSlug(post=self, slug=slug) for slug in dict.fromkeys(slugs)]
        )

    def set_tags(self, tag_ids):
        """Replace every tag link (delete all, then insert)."""
        PostTag.objects.filter(post=self).delete()
        PostTag.objects.bulk_create(
            [PostTag(post=self, tag_id=tag_id) for tag_id in dict.fromkeys(tag_ids)]
        )

    def can_view(self, actor):
        """Check if the actor may see this post."""
        if self.status == PostStatus.PUBLISHED:
            return True
        if actor is None:
            return False
        return actor.is_admin or actor.id == self.author_id

    def increment_view_count(self):
        """Increment view count atomically."""
        Post.objects.filter(pk=self.pk).update(view_count=models.F("view_count") + 1)


class PostTag(models.Model):
    """Link between a post and an approved tag."""

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="tag_links")
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name="post_links")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["post", "tag"], name="moderated_blog_post_tag"),
        ]

    def __str__(self):
        return f"{self.post_id} -> {self.tag_id}"


class PendingTagSlug(models.Model):
    """
    A tag slug a post asked for before the tag existed.

    One row per (post, slug) so a slug can be dropped from one post
    without touching any other post.
    """

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="pending_slugs")
    slug = models.SlugField(max_length=blog_settings.TAG_SLUG_MAX_LENGTH, db_index=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["post", "slug"],
                name="moderated_blog_pending_tag_slug",
            ),
        ]

    def __str__(self):
        return f"{self.post_id}: {self.slug}"


class PostRevision(Revision):
    """Proposed edit to a post: title, excerpt, content, tag_ids, tag_names."""

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="revisions")

    class Meta(Revision.Meta):
        verbose_name = "Post revision"

    def __str__(self):
        return f"Revision {self.pk} of post {self.post_id} ({self.status})"


class PostLike(models.Model):
    """A user's like on a post."""

    post = models.ForeignKey(Post, on_delete=models.CASCADE, related_name="likes")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blog_post_likes",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["post", "user"], name="moderated_blog_post_like"),
        ]

    def __str__(self):
        return f"{self.user} likes {self.post}"

    @classmethod
    def toggle(cls, post, user):
        """
        Toggle the user's like on a post.

        Returns (like_or_none, "created" | "removed").
        """
        existing = cls.objects.filter(post=post, user=user).first()
        if existing:
            existing.delete()
            return None, "removed"
        return cls.objects.create(post=post, user=user), "created"
