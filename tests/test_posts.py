"""
Tests for the post moderation workflow.
"""
import uuid

import pytest

from moderated_blog import api
from moderated_blog.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from moderated_blog.models import (
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
)


@pytest.fixture
def pending_post(actor):
    return api.submit_post(actor, title="Draft Idea", content="Body text")


@pytest.fixture
def published_post(actor, admin, pending_post):
    return api.approve_post(admin, pending_post.pk)


class TestSubmitPost:
    def test_user_post_is_pending(self, actor):
        """Contributor posts wait for review."""
        post = api.submit_post(actor, title="Hello World", content="Body")
        assert post.status == PostStatus.PENDING
        assert post.published_at is None
        assert post.slug == "hello-world"

    def test_admin_post_is_published(self, admin):
        """Admin posts are published at once."""
        post = api.submit_post(admin, title="Announcement", content="Body")
        assert post.status == PostStatus.PUBLISHED
        assert post.published_at is not None

    def test_anonymous_forbidden(self, db):
        """Anonymous callers cannot post."""
        with pytest.raises(ForbiddenError):
            api.submit_post(None, title="Hi")

    def test_title_required(self, actor):
        """A title is required."""
        with pytest.raises(BadRequestError) as excinfo:
            api.submit_post(actor, title="   ")
        assert excinfo.value.field == "title"

    def test_title_too_long(self, actor):
        """Overlong titles are rejected."""
        with pytest.raises(BadRequestError):
            api.submit_post(actor, title="x" * 257)

    def test_explicit_slug_conflict(self, actor):
        """A taken slug is a conflict."""
        api.submit_post(actor, title="One", slug="shared")
        with pytest.raises(ConflictError) as excinfo:
            api.submit_post(actor, title="Two", slug="shared")
        assert excinfo.value.field == "slug"
        assert excinfo.value.status == 409

    def test_derived_slug_suffixed(self, actor):
        """Derived slugs get a suffix on collision."""
        api.submit_post(actor, title="Same")
        assert api.submit_post(actor, title="Same").slug == "same-1"

    def test_tags_resolved(self, actor, db):
        """Tags are resolved when the post is submitted."""
        python = Tag.objects.create(name="Python", slug="python")
        post = api.submit_post(actor, title="T", tag_ids=[python.pk], tag_names=["Rust"])
        assert list(post.tags.all()) == [python]
        assert post.pending_tag_slugs == ["rust"]
        assert TagRequest.objects.filter(slug="rust").exists()

    def test_idempotency_key_returns_first_post(self, actor):
        """A repeated key returns the first post."""
        key = uuid.uuid4()
        first = api.submit_post(actor, title="Once", idempotency_key=key)
        second = api.submit_post(actor, title="Once again", idempotency_key=key)
        assert first.pk == second.pk
        assert Post.objects.count() == 1


class TestPostTransitions:
    def test_approve(self, admin, pending_post):
        """Approval publishes and stamps the post."""
        post = api.approve_post(admin, pending_post.pk)
        assert post.status == PostStatus.PUBLISHED
        assert post.published_at is not None

    def test_approve_twice_is_noop(self, admin, published_post):
        """Approving twice changes nothing."""
        published_at = published_post.published_at
        again = api.approve_post(admin, published_post.pk)
        assert again.status == PostStatus.PUBLISHED
        assert again.published_at == published_at

    def test_reject_after_approve_fails(self, admin, published_post):
        """A published post cannot be rejected."""
        with pytest.raises(BadRequestError):
            api.reject_post(admin, published_post.pk)

    def test_reject(self, admin, pending_post):
        """A rejected post cannot be approved later."""
        post = api.reject_post(admin, pending_post.pk)
        assert post.status == PostStatus.REJECTED
        with pytest.raises(BadRequestError):
            api.approve_post(admin, pending_post.pk)

    def test_non_admin_cannot_approve(self, actor, pending_post):
        """Contributors cannot approve posts."""
        with pytest.raises(ForbiddenError):
            api.approve_post(actor, pending_post.pk)

    def test_unknown_post(self, admin):
        """Approving an unknown post is not found."""
        with pytest.raises(NotFoundError):
            api.approve_post(admin, 424242)

    def test_approval_links_pending_tags(self, actor, admin):
        """Approval links slugs that became tags meanwhile."""
        post = api.submit_post(actor, title="T", tag_names=["Rust"])
        Tag.objects.create(name="Rust", slug="rust")
        api.approve_post(admin, post.pk)
        assert [tag.slug for tag in post.tags.all()] == ["rust"]
        assert post.pending_tag_slugs == []


class TestPostEdits:
    def test_user_edit_freezes_canonical(self, actor, published_post):
        """Contributor edits do not touch the live post."""
        result = api.request_post_edit(actor, published_post.pk, {"title": "Better"})
        assert not result.applied
        assert result.revision.patch == {"title": "Better"}
        published_post.refresh_from_db()
        assert published_post.title == "Draft Idea"

    def test_revision_keeps_only_sent_fields(self, actor, published_post):
        """Revisions store only the fields sent."""
        result = api.request_post_edit(actor, published_post.pk, {"excerpt": None})
        assert result.revision.patch == {"excerpt": None}

    def test_empty_edit_rejected(self, actor, published_post):
        """An edit with no fields is rejected."""
        with pytest.raises(BadRequestError):
            api.request_post_edit(actor, published_post.pk, {})

    def test_other_user_forbidden(self, other_actor, published_post):
        """Only the author can edit."""
        with pytest.raises(ForbiddenError):
            api.request_post_edit(other_actor, published_post.pk, {"title": "Mine"})

    def test_admin_edit_applies(self, admin, published_post):
        """Admin edits apply without a revision."""
        result = api.request_post_edit(admin, published_post.pk, {"title": "Fixed"})
        assert result.applied
        published_post.refresh_from_db()
        assert published_post.title == "Fixed"
        assert PostRevision.objects.count() == 0

    def test_approve_edit_applies_present_fields(self, actor, admin, published_post):
        """Approval copies only the fields in the revision."""
        revision = api.request_post_edit(
            actor, published_post.pk, {"title": "New", "excerpt": None}
        ).revision
        api.approve_post_edit(admin, revision.pk)
        published_post.refresh_from_db()
        assert published_post.title == "New"
        assert published_post.excerpt is None
        assert published_post.content == "Body text"
        revision.refresh_from_db()
        assert revision.status == ReviewStatus.APPROVED
        assert revision.reviewed_by_id == admin.id

    def test_reject_edit_leaves_canonical(self, actor, admin, published_post):
        """Rejecting an edit leaves the post alone."""
        revision = api.request_post_edit(actor, published_post.pk, {"title": "New"}).revision
        api.reject_post_edit(admin, revision.pk, note="No thanks")
        published_post.refresh_from_db()
        assert published_post.title == "Draft Idea"
        revision.refresh_from_db()
        assert revision.status == ReviewStatus.REJECTED
        assert revision.reviewer_note == "No thanks"

    def test_rejected_revision_cannot_be_approved(self, actor, admin, published_post):
        """A rejected revision stays rejected."""
        revision = api.request_post_edit(actor, published_post.pk, {"title": "New"}).revision
        api.reject_post_edit(admin, revision.pk)
        with pytest.raises(BadRequestError):
            api.approve_post_edit(admin, revision.pk)

    def test_tag_edit_approved_with_unapproved_name(self, actor, admin, published_post):
        """Unapproved tag names stay pending on approval."""
        revision = api.request_post_edit(
            actor, published_post.pk, {"tag_names": ["Rust"]}
        ).revision
        assert TagRequest.objects.filter(slug="rust", status=ReviewStatus.PENDING).exists()
        api.approve_post_edit(admin, revision.pk)
        assert not Tag.objects.filter(slug="rust").exists()
        assert published_post.pending_tag_slugs == ["rust"]

    def test_approve_edit_with_deleted_tag_fails(self, actor, admin, published_post):
        """A revision naming a deleted tag cannot be approved."""
        keep = Tag.objects.create(name="Keep", slug="keep")
        gone = Tag.objects.create(name="Gone", slug="gone")
        published_post.set_tags([keep.pk])
        revision = api.request_post_edit(
            actor, published_post.pk, {"title": "Retagged", "tag_ids": [gone.pk]}
        ).revision
        api.delete_tag(admin, gone.pk)

        with pytest.raises(BadRequestError):
            api.approve_post_edit(admin, revision.pk)

        published_post.refresh_from_db()
        assert published_post.title == "Draft Idea"
        assert [tag.slug for tag in published_post.tags.all()] == ["keep"]
        revision.refresh_from_db()
        assert revision.status == ReviewStatus.PENDING

    def test_admin_tag_edit_recomputes_pending(self, actor, admin):
        """Admin tag edits replace links and pending slugs."""
        post = api.submit_post(actor, title="T", tag_names=["Rust", "Zig"])
        api.request_post_edit(admin, post.pk, {"tag_names": ["Go"]})
        assert post.pending_tag_slugs == []
        assert [tag.slug for tag in post.tags.all()] == ["go"]

    def test_idempotent_revision(self, actor, published_post):
        """A repeated key returns the first revision."""
        key = uuid.uuid4()
        first = api.request_post_edit(actor, published_post.pk, {"title": "A"}, key)
        second = api.request_post_edit(actor, published_post.pk, {"title": "B"}, key)
        assert first.revision.pk == second.revision.pk
        assert PostRevision.objects.count() == 1


class TestDeletePost:
    def test_cascades(self, actor, other_actor, admin, published_post, other_user):
        """Deleting a post removes everything hanging off it."""
        comment = api.submit_comment(other_actor, published_post.pk, "Nice")
        api.request_comment_edit(other_actor, comment.pk, {"body": "Nicer"})
        api.request_post_edit(actor, published_post.pk, {"title": "X"})
        PostLike.toggle(published_post, other_user)
        published_post.set_tags([Tag.objects.create(name="Go").pk])
        published_post.set_pending_tag_slugs(["rust"])

        assert api.delete_post(admin, published_post.pk) == published_post.pk

        assert not Post.objects.exists()
        assert not Comment.objects.exists()
        assert not CommentRevision.objects.exists()
        assert not PostRevision.objects.exists()
        assert not PostLike.objects.exists()
        assert not PostTag.objects.exists()
        assert not PendingTagSlug.objects.exists()
        assert Tag.objects.count() == 1

    def test_admin_only(self, actor, published_post):
        """Only admins delete posts."""
        with pytest.raises(ForbiddenError):
            api.delete_post(actor, published_post.pk)
