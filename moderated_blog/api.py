"""
Moderated blog API.

Views, admin actions and management code should go through these functions
instead of writing the models directly: most commands touch several tables
(tag links, pending slugs, revisions, tag requests) that must change
together.

Every command takes the caller's Actor (see moderated_blog.actors) as its
first argument and raises moderated_blog.exceptions errors on failure. The
public read helpers at the bottom take no actor.
"""
import datetime
import logging

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.text import slugify

from . import workflow
from .conf import blog_settings
from .exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from .families import (
    COMMENTS,
    POSTS,
    TAGS,
    clean_body,
    clean_content,
    clean_excerpt,
    clean_tag_inputs,
    clean_title,
)
from .models import (
    Comment,
    CommentRevision,
    PendingTagSlug,
    Post,
    PostRevision,
    PostStatus,
    PostTag,
    ReviewStatus,
    Tag,
    TagRequest,
    TagRevision,
)
from .search import KIND_TAG, schedule_remove, schedule_upsert
from .slugs import generate_tag_slug, normalize_tag_name, normalize_user_slug
from .tagging import publish_tag, resolve_tags

logger = logging.getLogger(__name__)


# Posts

@transaction.atomic
def submit_post(actor, title, slug=None, excerpt=None, content=None,
                tag_ids=None, tag_names=None, idempotency_key=None):
    """
    Create a post.

    Admin posts are published at once; everyone else's wait in pending.
    Tags are resolved first so links and pending slugs land with the post.
    """
    workflow.require_actor(actor)
    existing = workflow.find_by_key(Post, "author", actor.id, idempotency_key)
    if existing is not None:
        return existing

    title = clean_title(title)
    excerpt = clean_excerpt(excerpt)
    content = clean_content(content)
    clean_tag_inputs(tag_ids, tag_names)

    raw_slug = (slug or "").strip()
    if raw_slug:
        final_slug = slugify(raw_slug)[:blog_settings.POST_SLUG_MAX_LENGTH]
        if not final_slug:
            raise BadRequestError("Slug is not valid.", field="slug")
        if Post.objects.filter(slug=final_slug).exists():
            raise ConflictError("Slug already exists.", field="slug")
    else:
        final_slug = Post.unique_slug_for(title)

    resolution = resolve_tags(actor, tag_ids, tag_names)
    published = actor.is_admin
    post, created = workflow.create_once(
        Post,
        "author",
        actor.id,
        idempotency_key,
        conflict_message="Slug already exists.",
        conflict_field="slug",
        title=title,
        slug=final_slug,
        excerpt=excerpt,
        content=content,
        status=PostStatus.PUBLISHED if published else PostStatus.PENDING,
        published_at=timezone.now() if published else None,
    )
    if not created:
        return post

    post.set_tags(resolution.resolved_tag_ids)
    post.set_pending_tag_slugs(resolution.pending_tag_slugs)
    if published:
        schedule_upsert(post.pk)
    logger.info("Post %s submitted by %s (%s)", post.pk, actor.id, post.status)
    return post


def request_post_edit(actor, post_id, data, idempotency_key=None):
    """
    Edit a post: applied at once for admins, filed as a revision otherwise.

    ``data`` holds only the changed fields among title, excerpt, content,
    tag_ids and tag_names. Returns a workflow.EditResult.
    """
    return workflow.request_edit(POSTS, actor, post_id, data, idempotency_key)


def approve_post(actor, post_id):
    return workflow.approve_new(POSTS, actor, post_id)


def reject_post(actor, post_id, note=""):
    return workflow.reject_new(POSTS, actor, post_id, note)


def approve_post_edit(actor, revision_id):
    return workflow.approve_edit(POSTS, actor, revision_id)


def reject_post_edit(actor, revision_id, note=""):
    return workflow.reject_edit(POSTS, actor, revision_id, note)


def delete_post(actor, post_id):
    return workflow.delete(POSTS, actor, post_id)


# Comments

@transaction.atomic
def submit_comment(actor, post_id, body, parent_id=None, idempotency_key=None):
    """
    Comment on a published post, optionally as a reply.

    A reply to a comment that is not approved yet is only allowed for the
    parent's author and admins.
    """
    workflow.require_actor(actor)
    existing = workflow.find_by_key(Comment, "author", actor.id, idempotency_key)
    if existing is not None:
        return existing

    body = clean_body(body)
    try:
        post = Post.objects.filter(pk=int(post_id)).first()
    except (TypeError, ValueError):
        post = None
    if post is None or post.status != PostStatus.PUBLISHED:
        raise BadRequestError("Post not available.", field="post_id")

    parent = None
    if parent_id:
        try:
            parent = Comment.objects.filter(pk=int(parent_id)).first()
        except (TypeError, ValueError):
            parent = None
        if parent is None or parent.post_id != post.pk:
            raise BadRequestError("Invalid parent.", field="parent_id")
        if (
            not actor.is_admin
            and parent.status != ReviewStatus.APPROVED
            and parent.author_id != actor.id
        ):
            raise ForbiddenError("Cannot reply to this comment.")

    approved = actor.is_admin
    comment, _ = workflow.create_once(
        Comment,
        "author",
        actor.id,
        idempotency_key,
        conflict_message="Duplicate comment detected.",
        post=post,
        parent=parent,
        body=body,
        status=ReviewStatus.APPROVED if approved else ReviewStatus.PENDING,
        approved_at=timezone.now() if approved else None,
        reviewed_by_id=actor.id if approved else None,
    )
    return comment


def request_comment_edit(actor, comment_id, data, idempotency_key=None):
    return workflow.request_edit(COMMENTS, actor, comment_id, data, idempotency_key)


def approve_comment(actor, comment_id):
    return workflow.approve_new(COMMENTS, actor, comment_id)


def reject_comment(actor, comment_id, note=""):
    return workflow.reject_new(COMMENTS, actor, comment_id, note)


def approve_comment_edit(actor, revision_id):
    return workflow.approve_edit(COMMENTS, actor, revision_id)


def reject_comment_edit(actor, revision_id, note=""):
    return workflow.reject_edit(COMMENTS, actor, revision_id, note)


def delete_comment(actor, comment_id):
    return workflow.delete(COMMENTS, actor, comment_id)


# Tags

@transaction.atomic
def request_new_tag(actor, name, slug=None, idempotency_key=None):
    """
    Propose a new tag, or create it directly when the actor is an admin.

    Returns the Tag for admins and the TagRequest for everyone else. A
    pending request for the same slug by someone else is a conflict.
    """
    workflow.require_actor(actor)
    if not isinstance(name, str) or not normalize_tag_name(name):
        raise BadRequestError("Tag name is required.", field="name")
    name = normalize_tag_name(name)

    final_slug = normalize_user_slug(slug) if slug else ""
    if final_slug is None:
        raise BadRequestError(
            "Slug can only contain lowercase letters and numbers.", field="slug"
        )
    final_slug = final_slug or generate_tag_slug(name)

    existing_request = workflow.find_by_key(TagRequest, "requested_by", actor.id, idempotency_key)
    if existing_request is not None:
        return existing_request

    existing_tag = Tag.objects.filter(Q(slug=final_slug) | Q(name__iexact=name)).first()
    if existing_tag is not None:
        if actor.is_admin:
            return existing_tag
        field = "slug" if existing_tag.slug == final_slug else "name"
        raise ConflictError("Tag already exists.", field=field)

    if actor.is_admin:
        tag, _ = publish_tag(name, final_slug, approver_id=actor.id)
        return tag

    pending = TagRequest.objects.filter(slug=final_slug, status=ReviewStatus.PENDING).first()
    if pending is not None:
        if pending.requested_by_id == actor.id:
            return pending
        raise ConflictError("Tag request already pending.", field="slug")

    request, _ = workflow.create_once(
        TagRequest,
        "requested_by",
        actor.id,
        idempotency_key,
        conflict_message="Tag request already pending.",
        conflict_field="slug",
        name=name,
        slug=final_slug,
        status=ReviewStatus.PENDING,
    )
    return request


def request_tag_edit(actor, tag_id, data, idempotency_key=None):
    """Rename or re-slug a tag; admins apply directly."""
    return workflow.request_edit(TAGS, actor, tag_id, data, idempotency_key)


def approve_tag_request(actor, request_id):
    return workflow.approve_new(TAGS, actor, request_id)


def reject_tag_request(actor, request_id, note=""):
    return workflow.reject_new(TAGS, actor, request_id, note)


def approve_tag_edit(actor, revision_id):
    """
    Apply a tag revision.

    The target slug is checked again: another tag may have taken it after
    the revision was filed.
    """
    return workflow.approve_edit(TAGS, actor, revision_id)


def reject_tag_edit(actor, revision_id, note=""):
    return workflow.reject_edit(TAGS, actor, revision_id, note)


def delete_tag(actor, tag_id):
    return workflow.delete(TAGS, actor, tag_id)


@transaction.atomic
def delete_tags(actor, tag_ids):
    """Bulk delete. Unknown ids are skipped; returns the number deleted."""
    workflow.require_admin(actor)
    unique_ids = list(dict.fromkeys(tag_ids or []))
    if not unique_ids or len(unique_ids) > blog_settings.BULK_DELETE_MAX:
        raise BadRequestError(
            f"Select between 1 and {blog_settings.BULK_DELETE_MAX} tags.", field="tag_ids"
        )
    try:
        existing_ids = list(Tag.objects.filter(pk__in=unique_ids).values_list("pk", flat=True))
    except (TypeError, ValueError):
        raise BadRequestError("Invalid tag selection.", field="tag_ids")
    if not existing_ids:
        return 0

    PostTag.objects.filter(tag_id__in=existing_ids).delete()
    TagRevision.objects.filter(tag_id__in=existing_ids).delete()
    Tag.objects.filter(pk__in=existing_ids).delete()
    for tag_id in existing_ids:
        schedule_remove(tag_id, kind=KIND_TAG)
    logger.info("Deleted %d tags", len(existing_ids))
    return len(existing_ids)


@transaction.atomic
def withdraw_tag_request(actor, request_id):
    """
    Let a contributor take back their own tag request.

    Unless it was already approved, the slug is dropped from the
    contributor's posts and the name from their pending post revisions.
    """
    workflow.require_actor(actor)
    request = TagRequest.objects.filter(pk=request_id).first()
    if request is None:
        raise NotFoundError("Request not found.")
    if request.requested_by_id != actor.id:
        raise ForbiddenError("Not your request.")

    status = request.status
    request.delete()
    if status == ReviewStatus.APPROVED:
        return

    PendingTagSlug.objects.filter(post__author_id=actor.id, slug=request.slug).delete()

    withdrawn = request.name.casefold()
    revisions = PostRevision.objects.filter(author_id=actor.id, status=ReviewStatus.PENDING)
    for revision in revisions:
        names = revision.patch.get("tag_names")
        if not names:
            continue
        kept = [name for name in names if normalize_tag_name(name).casefold() != withdrawn]
        if len(kept) != len(names):
            revision.patch["tag_names"] = kept or None
            revision.save(update_fields=["patch"])


# Queues

def pending_queue(actor):
    """Everything waiting for review, newest first."""
    workflow.require_admin(actor)
    return {
        "posts": Post.objects.filter(status=PostStatus.PENDING).order_by("-created_at"),
        "post_edits": PostRevision.objects.filter(status=ReviewStatus.PENDING)
        .select_related("post"),
        "comments": Comment.objects.filter(status=ReviewStatus.PENDING).order_by("-created_at"),
        "comment_edits": CommentRevision.objects.filter(status=ReviewStatus.PENDING),
        "tag_requests": TagRequest.objects.filter(status=ReviewStatus.PENDING),
        "tag_edits": TagRevision.objects.filter(status=ReviewStatus.PENDING)
        .select_related("tag"),
    }


# Reading

def list_tags():
    """The approved tag catalogue, alphabetically."""
    return Tag.objects.order_by("name", "id")


def list_published_posts():
    """Published posts, most recently published first."""
    return Post.objects.filter(status=PostStatus.PUBLISHED).order_by(
        F("published_at").desc(nulls_last=True), "-id"
    )


def archive_by_date():
    """
    Group published posts by the UTC day they were published.

    Returns a dict of ``YYYY-MM-DD`` -> posts, newest day first.
    """
    archive = {}
    posts = list_published_posts().only("id", "title", "slug", "published_at")
    for post in posts:
        moment = post.published_at or timezone.now()
        day = moment.astimezone(datetime.timezone.utc).date().isoformat()
        archive.setdefault(day, []).append(post)
    return archive
