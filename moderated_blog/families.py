"""
Entity families plugged into the moderation state machine.

Posts, comments and tags share the transition rules in
moderated_blog.workflow; each family here only describes its models, its
editable fields and what happens around a transition.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from .conf import blog_settings
from .exceptions import BadRequestError, ConflictError
from .models import (
    Comment,
    CommentRevision,
    PendingTagSlug,
    Post,
    PostLike,
    PostRevision,
    PostStatus,
    PostTag,
    ReviewStatus,
    Tag,
    TagRequest,
    TagRevision,
)
from .patches import Patch
from .reconcile import link_pending_tags, on_tag_approved
from .search import KIND_TAG, schedule_remove, schedule_upsert
from .slugs import generate_tag_slug, normalize_user_slug
from .tagging import publish_tag, resolve_approved_tags, resolve_tags
from .workflow import EntityFamily

logger = logging.getLogger(__name__)

TAG_FIELDS = ("tag_ids", "tag_names")


def clean_title(value):
    if not isinstance(value, str) or not value.strip():
        raise BadRequestError("Title is required.", field="title")
    if len(value) > blog_settings.POST_TITLE_MAX_LENGTH:
        raise BadRequestError("Title is too long.", field="title")
    return value.strip()


def clean_excerpt(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequestError("Excerpt must be text.", field="excerpt")
    if len(value) > blog_settings.EXCERPT_MAX_LENGTH:
        raise BadRequestError("Excerpt is too long.", field="excerpt")
    return value.strip() or None


def clean_content(value, required=False):
    if value is None and not required:
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise BadRequestError("Content is required.", field="content")
    return value.strip() or None


def clean_tag_inputs(tag_ids, tag_names):
    if tag_ids is not None and not isinstance(tag_ids, (list, tuple)):
        raise BadRequestError("Tag ids must be a list.", field="tag_ids")
    if tag_names is not None:
        if not isinstance(tag_names, (list, tuple)):
            raise BadRequestError("Tag names must be a list.", field="tag_names")
        for name in tag_names:
            if not isinstance(name, str) or not name.strip():
                raise BadRequestError("Tag names cannot be empty.", field="tag_names")
            if len(name) > blog_settings.TAG_NAME_MAX_LENGTH:
                raise BadRequestError("Tag name is too long.", field="tag_names")
    return tag_ids, tag_names


def clean_body(value):
    if not isinstance(value, str) or not value.strip():
        raise BadRequestError("Comment body is required.", field="body")
    if len(value) > blog_settings.COMMENT_MAX_LENGTH:
        raise BadRequestError("Comment is too long.", field="body")
    return value.strip()


class PostFamily(EntityFamily):
    label = "post"
    model = Post
    proposal_model = Post
    revision_model = PostRevision
    parent_field = "post"
    fields = ("title", "excerpt", "content") + TAG_FIELDS

    approved_status = PostStatus.PUBLISHED
    rejected_status = PostStatus.REJECTED
    pending_status = PostStatus.PENDING

    def prepare_patch(self, actor, entity, patch):
        values = {}
        if "title" in patch:
            values["title"] = clean_title(patch.get("title"))
        if "excerpt" in patch:
            values["excerpt"] = clean_excerpt(patch.get("excerpt"))
        if "content" in patch:
            values["content"] = clean_content(patch.get("content"), required=True)
        if "tag_ids" in patch or "tag_names" in patch:
            clean_tag_inputs(patch.get("tag_ids"), patch.get("tag_names"))
            for name in TAG_FIELDS:
                if name in patch:
                    values[name] = patch.get(name)
        return Patch(values)

    def stage_revision_patch(self, actor, entity, patch):
        """
        Resolve the proposed tags now.

        Unknown names are queued as tag requests; the revision stores the
        resolved ids together with the names as typed.
        """
        if "tag_ids" not in patch and "tag_names" not in patch:
            return patch
        resolution = resolve_tags(actor, patch.get("tag_ids"), patch.get("tag_names"))
        values = patch.as_dict()
        values["tag_ids"] = resolution.resolved_tag_ids
        return Patch(values)

    def _save_content(self, post, patch):
        content = patch.without(*TAG_FIELDS)
        if content:
            content.apply_to(post)
            post.save(update_fields=content.fields + ["updated_at"])

    def _replace_tags(self, post, resolution):
        post.set_tags(resolution.resolved_tag_ids)
        post.set_pending_tag_slugs(resolution.pending_tag_slugs)
        Post.objects.filter(pk=post.pk).update(updated_at=timezone.now())

    def apply_direct(self, actor, post, patch):
        self._save_content(post, patch)
        if "tag_ids" in patch or "tag_names" in patch:
            resolution = resolve_tags(actor, patch.get("tag_ids"), patch.get("tag_names"))
            self._replace_tags(post, resolution)
        if post.is_published:
            schedule_upsert(post.pk)

    def apply_revision(self, actor, post, patch):
        self._save_content(post, patch)
        if "tag_ids" in patch or "tag_names" in patch:
            resolution = resolve_approved_tags(patch.get("tag_ids"), patch.get("tag_names"))
            self._replace_tags(post, resolution)
        if post.is_published:
            schedule_upsert(post.pk)

    def approve_proposal(self, actor, post):
        post.status = PostStatus.PUBLISHED
        post.published_at = timezone.now()
        post.save(update_fields=["status", "published_at"])
        link_pending_tags(post)
        schedule_upsert(post.pk)
        return post

    def reject_proposal(self, actor, post, note=""):
        post.status = PostStatus.REJECTED
        post.save(update_fields=["status"])
        if note:
            logger.info("Post %s rejected: %s", post.pk, note)
        schedule_remove(post.pk)
        return post

    def cascade(self, post):
        return [
            PostRevision.objects.filter(post=post),
            CommentRevision.objects.filter(comment__post=post),
            Comment.objects.filter(post=post),
            PostLike.objects.filter(post=post),
            PostTag.objects.filter(post=post),
            PendingTagSlug.objects.filter(post=post),
        ]

    def after_delete(self, post_id):
        schedule_remove(post_id)


class CommentFamily(EntityFamily):
    label = "comment"
    model = Comment
    proposal_model = Comment
    revision_model = CommentRevision
    parent_field = "comment"
    fields = ("body",)

    def prepare_patch(self, actor, entity, patch):
        return Patch({"body": clean_body(patch.get("body"))})

    def apply_direct(self, actor, comment, patch):
        comment.body = patch.get("body")
        comment.reviewed_by_id = actor.id
        comment.save(update_fields=["body", "reviewed_by", "updated_at"])

    def apply_revision(self, actor, comment, patch):
        comment.body = patch.get("body")
        comment.save(update_fields=["body", "updated_at"])

    def approve_proposal(self, actor, comment):
        comment.status = ReviewStatus.APPROVED
        comment.approved_at = timezone.now()
        comment.reviewed_by_id = actor.id
        comment.save(update_fields=["status", "approved_at", "reviewed_by"])
        return comment

    def reject_proposal(self, actor, comment, note=""):
        comment.status = ReviewStatus.REJECTED
        comment.reviewed_by_id = actor.id
        comment.save(update_fields=["status", "reviewed_by"])
        return comment

    def cascade(self, comment):
        thread = [comment.pk]
        frontier = [comment.pk]
        while frontier:
            frontier = list(
                Comment.objects.filter(parent_id__in=frontier).values_list("pk", flat=True)
            )
            thread.extend(frontier)
        return [
            CommentRevision.objects.filter(comment_id__in=thread),
            Comment.objects.filter(pk__in=thread).exclude(pk=comment.pk),
        ]


class TagFamily(EntityFamily):
    """
    Tags: new tags arrive as TagRequest rows, edits as TagRevision rows.

    Tags are shared, so any signed-in user may propose an edit.
    """

    label = "tag"
    model = Tag
    proposal_model = TagRequest
    revision_model = TagRevision
    parent_field = "tag"
    fields = ("name", "slug")

    def get_proposal(self, pk, lock=False):
        return self._get(TagRequest, pk, "Request", lock=lock)

    def may_edit(self, actor, entity):
        return True

    def _check_slug_free(self, tag, slug):
        if slug != tag.slug and Tag.objects.filter(slug=slug).exclude(pk=tag.pk).exists():
            raise ConflictError("Slug already exists.", field="slug")

    def prepare_patch(self, actor, tag, patch):
        raw_name = patch.get("name") or ""
        raw_slug = patch.get("slug") or ""
        if not isinstance(raw_name, str) or not isinstance(raw_slug, str):
            raise BadRequestError("Name and slug must be text.", field="name")
        raw_name = raw_name.strip()
        raw_slug = raw_slug.strip()
        if not raw_name and not raw_slug:
            raise BadRequestError("Name or slug is required.", field="name")

        slug = normalize_user_slug(raw_slug) if raw_slug else ""
        if slug is None:
            raise BadRequestError(
                "Slug can only contain lowercase letters and numbers.", field="slug"
            )

        name = raw_name[:blog_settings.TAG_NAME_MAX_LENGTH] if raw_name else tag.name
        if not slug:
            slug = generate_tag_slug(name) if raw_name else tag.slug
        self._check_slug_free(tag, slug)
        return Patch({"name": name, "slug": slug})

    def apply_direct(self, actor, tag, patch):
        self._check_slug_free(tag, patch.get("slug", tag.slug))
        old_slug = tag.slug
        patch.apply_to(tag)
        try:
            with transaction.atomic():
                tag.save(update_fields=patch.fields)
        except IntegrityError:
            raise ConflictError("Slug already exists.", field="slug")
        if tag.slug != old_slug:
            on_tag_approved(tag)
        schedule_upsert(tag.pk, kind=KIND_TAG)

    def approve_proposal(self, actor, request):
        publish_tag(
            request.name,
            request.slug,
            approver_id=actor.id,
            created_by_id=request.requested_by_id,
        )
        request.refresh_from_db()
        if request.status != ReviewStatus.APPROVED:
            update_fields = request.mark_reviewed(ReviewStatus.APPROVED, actor.id)
            request.save(update_fields=update_fields)
        return request

    def reject_proposal(self, actor, request, note=""):
        update_fields = request.mark_reviewed(ReviewStatus.REJECTED, actor.id, note)
        request.save(update_fields=update_fields)
        return request

    def cascade(self, tag):
        return [
            PostTag.objects.filter(tag=tag),
            TagRevision.objects.filter(tag=tag),
        ]

    def after_delete(self, tag_id):
        schedule_remove(tag_id, kind=KIND_TAG)


POSTS = PostFamily()
COMMENTS = CommentFamily()
TAGS = TagFamily()

FAMILIES = {family.label: family for family in (POSTS, COMMENTS, TAGS)}
