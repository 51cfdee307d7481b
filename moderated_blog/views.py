"""
JSON views for django-moderated-blog.

Every view resolves the caller's Actor once and hands it to moderated_blog.api;
engine errors come back as ``{"error": {code, message, kind, field}}``.
"""
import json
import logging
import uuid

from django.contrib.auth.mixins import LoginRequiredMixin
from django.db.models import Q
from django.http import JsonResponse
from django.views import View

from . import api
from .actors import is_admin, resolve_actor
from .exceptions import BadRequestError, ForbiddenError, ModerationError, NotFoundError
from .feed import assemble_feed, parse_feed_params
from .models import Post, PostLike, ReviewStatus
from .overlay import effective_comments, effective_post

logger = logging.getLogger(__name__)


def error_response(error):
    return JsonResponse({"error": error.as_dict()}, status=error.status)


def parse_idempotency_key(request, data):
    """Key from the body or the Idempotency-Key header; must be a UUID."""
    raw = data.pop("idempotency_key", None) or request.headers.get("Idempotency-Key")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise BadRequestError("Idempotency key must be a UUID.", field="idempotency_key")


def serialize_post(post, viewer=None):
    """Pending tag slugs are shown to the author and admins only."""
    data = {
        "id": post.pk,
        "slug": post.slug,
        "title": post.title,
        "excerpt": post.excerpt,
        "content": post.content,
        "status": post.status,
        "created_at": post.created_at.isoformat(),
        "published_at": post.published_at.isoformat() if post.published_at else None,
        "tags": [{"name": tag.name, "slug": tag.slug} for tag in post.tags.all()],
    }
    if is_admin(viewer) or (viewer is not None and viewer.id == post.author_id):
        data["pending_tag_slugs"] = post.pending_tag_slugs
    return data


def serialize_archive_entry(post):
    return {
        "id": post.pk,
        "slug": post.slug,
        "title": post.title,
        "published_at": post.published_at.isoformat() if post.published_at else None,
    }


def serialize_comment(comment):
    return {
        "id": comment.pk,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "body": comment.body,
        "status": comment.status,
        "created_at": comment.created_at.isoformat(),
    }


def serialize_tag(tag):
    return {"id": tag.pk, "name": tag.name, "slug": tag.slug}


def serialize_tag_request(request):
    return {
        "id": request.pk,
        "name": request.name,
        "slug": request.slug,
        "status": request.status,
    }


def serialize_revision(revision):
    return {
        "id": revision.pk,
        "status": revision.status,
        "patch": revision.patch,
        "created_at": revision.created_at.isoformat(),
    }


class ModerationApiView(View):
    """Base view: actor resolution, JSON body parsing, error mapping."""

    def dispatch(self, request, *args, **kwargs):
        self.actor = resolve_actor(request.user)
        try:
            return super().dispatch(request, *args, **kwargs)
        except ModerationError as error:
            logger.debug("Request to %s failed: %s", request.path, error.as_dict())
            return error_response(error)

    def get_data(self):
        if self.request.content_type == "application/json":
            try:
                data = json.loads(self.request.body or b"{}")
            except ValueError:
                raise BadRequestError("Request body must be JSON.")
            if not isinstance(data, dict):
                raise BadRequestError("Request body must be a JSON object.")
            return data
        return self.request.POST.dict()


class SignedInApiView(LoginRequiredMixin, ModerationApiView):
    """Mutation views: anonymous callers get a JSON 403."""

    def handle_no_permission(self):
        return error_response(ForbiddenError("Sign in required."))


class FeedView(ModerationApiView):
    """GET feed/: one page of posts, keyset-paginated."""

    def get(self, request):
        filters, cursor, limit = parse_feed_params(request.GET)
        page = assemble_feed(self.actor, filters, cursor, limit)
        return JsonResponse(page.to_dict())


class TagListView(ModerationApiView):
    """GET tags/: the tag catalogue, with the ids submissions refer to."""

    def get(self, request):
        return JsonResponse({"tags": [serialize_tag(tag) for tag in api.list_tags()]})


class PublishedPostListView(ModerationApiView):
    def get(self, request):
        posts = api.list_published_posts().prefetch_related("tags")
        return JsonResponse({"posts": [serialize_post(post) for post in posts]})


class ArchiveView(ModerationApiView):
    """GET archive/: published posts grouped by publication day."""

    def get(self, request):
        archive = api.archive_by_date()
        return JsonResponse({
            "archive": {
                day: [serialize_archive_entry(post) for post in posts]
                for day, posts in archive.items()
            }
        })


class PostDetailView(ModerationApiView):
    """A single post with the viewer's pending edits overlaid."""

    def get(self, request, pk):
        post = Post.objects.filter(pk=pk).first()
        if post is None or not post.can_view(self.actor):
            raise NotFoundError("Post not found.")

        post.increment_view_count()
        display = effective_post(post, self.actor)
        data = serialize_post(post, self.actor)
        data.update(display.values)
        data.update({
            "status": display.status,
            "overlaid": display.overlaid,
            "revision_id": display.revision_id,
            "views": post.view_count + 1,
            "likes": post.likes.count(),
        })

        comments = post.comments.all()
        if self.actor is None:
            comments = comments.filter(status=ReviewStatus.APPROVED)
        elif not self.actor.is_admin:
            comments = comments.filter(
                Q(status=ReviewStatus.APPROVED) | Q(author_id=self.actor.id)
            )
        comments = list(comments.order_by("created_at", "id"))
        displayed = effective_comments(comments, self.actor)
        data["comments"] = [
            dict(serialize_comment(comment), body=shown["body"], status=shown.status)
            for comment, shown in zip(comments, displayed)
        ]
        return JsonResponse({"post": data})


class PostCreateView(SignedInApiView):
    def post(self, request):
        data = self.get_data()
        key = parse_idempotency_key(request, data)
        post = api.submit_post(
            self.actor,
            title=data.get("title"),
            slug=data.get("slug"),
            excerpt=data.get("excerpt"),
            content=data.get("content"),
            tag_ids=data.get("tag_ids"),
            tag_names=data.get("tag_names"),
            idempotency_key=key,
        )
        return JsonResponse({"post": serialize_post(post, self.actor)}, status=201)


class EditView(SignedInApiView):
    """Shared handler for post, comment and tag edits."""

    edit = None
    serialize = None

    def post(self, request, pk):
        data = self.get_data()
        key = parse_idempotency_key(request, data)
        result = type(self).edit(self.actor, pk, data, idempotency_key=key)
        body = {"applied": result.applied}
        if result.applied:
            result.entity.refresh_from_db()
            body["entity"] = self.serialize_entity(result.entity)
        else:
            body["revision"] = serialize_revision(result.revision)
        return JsonResponse(body, status=200 if result.applied else 202)

    def serialize_entity(self, entity):
        return type(self).serialize(entity)


class PostEditView(EditView):
    edit = api.request_post_edit

    def serialize_entity(self, entity):
        return serialize_post(entity, self.actor)


class CommentCreateView(SignedInApiView):
    """Add a comment to a post."""

    def post(self, request):
        data = self.get_data()
        key = parse_idempotency_key(request, data)
        comment = api.submit_comment(
            self.actor,
            post_id=data.get("post_id"),
            body=data.get("body"),
            parent_id=data.get("parent_id"),
            idempotency_key=key,
        )
        return JsonResponse({"comment": serialize_comment(comment)}, status=201)


class CommentEditView(EditView):
    edit = api.request_comment_edit
    serialize = serialize_comment


class TagRequestView(SignedInApiView):
    """Request a new tag; admins get the tag itself."""

    def post(self, request):
        data = self.get_data()
        key = parse_idempotency_key(request, data)
        result = api.request_new_tag(
            self.actor, data.get("name"), slug=data.get("slug"), idempotency_key=key
        )
        if self.actor.is_admin:
            return JsonResponse({"tag": serialize_tag(result)}, status=201)
        return JsonResponse({"request": serialize_tag_request(result)}, status=201)


class TagEditView(EditView):
    edit = api.request_tag_edit
    serialize = serialize_tag


class TagRequestWithdrawView(SignedInApiView):
    def post(self, request, pk):
        api.withdraw_tag_request(self.actor, pk)
        return JsonResponse({"withdrawn": pk})


MODERATION_ACTIONS = {
    ("post", "approve"): api.approve_post,
    ("post", "reject"): api.reject_post,
    ("post-edit", "approve"): api.approve_post_edit,
    ("post-edit", "reject"): api.reject_post_edit,
    ("comment", "approve"): api.approve_comment,
    ("comment", "reject"): api.reject_comment,
    ("comment-edit", "approve"): api.approve_comment_edit,
    ("comment-edit", "reject"): api.reject_comment_edit,
    ("tag-request", "approve"): api.approve_tag_request,
    ("tag-request", "reject"): api.reject_tag_request,
    ("tag-edit", "approve"): api.approve_tag_edit,
    ("tag-edit", "reject"): api.reject_tag_edit,
}

DELETE_ACTIONS = {
    "post": api.delete_post,
    "comment": api.delete_comment,
    "tag": api.delete_tag,
}


class ModerationView(SignedInApiView):
    """POST moderation/<target>/<pk>/<action>/ for admins."""

    def post(self, request, target, pk, action):
        if action == "delete":
            handler = DELETE_ACTIONS.get(target)
            if handler is None:
                raise NotFoundError("Unknown moderation target.")
            handler(self.actor, pk)
            return JsonResponse({"deleted": pk})

        handler = MODERATION_ACTIONS.get((target, action))
        if handler is None:
            raise NotFoundError("Unknown moderation target.")
        if action == "reject":
            note = self.get_data().get("note") or ""
            result = handler(self.actor, pk, note)
        else:
            result = handler(self.actor, pk)
        return JsonResponse({"id": result.pk, "status": result.status})


class PostLikeToggleView(SignedInApiView):
    """Toggle the caller's like on a published post."""

    def post(self, request, pk):
        post = Post.objects.filter(pk=pk).first()
        if post is None or not post.is_published:
            raise NotFoundError("Post not found.")

        like, action = PostLike.toggle(post, request.user)
        return JsonResponse({
            "action": action,
            "liked": like is not None,
            "total_likes": post.likes.count(),
        })


class PendingQueueView(SignedInApiView):
    """Everything waiting for an admin."""

    def get(self, request):
        queue = api.pending_queue(self.actor)
        return JsonResponse({
            "posts": [serialize_post(post, self.actor) for post in queue["posts"]],
            "post_edits": [serialize_revision(rev) for rev in queue["post_edits"]],
            "comments": [serialize_comment(comment) for comment in queue["comments"]],
            "comment_edits": [serialize_revision(rev) for rev in queue["comment_edits"]],
            "tag_requests": [serialize_tag_request(req) for req in queue["tag_requests"]],
            "tag_edits": [serialize_revision(rev) for rev in queue["tag_edits"]],
        })
