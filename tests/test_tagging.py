"""
Tests for tag resolution.
"""
import pytest

from moderated_blog.exceptions import BadRequestError
from moderated_blog.models import ReviewStatus, Tag, TagRequest
from moderated_blog.tagging import (
    normalize_tag_names,
    publish_tag,
    resolve_approved_tags,
    resolve_tags,
)


@pytest.fixture
def python_tag(db):
    return Tag.objects.create(name="Python", slug="python")


class TestNormalizeTagNames:
    def test_first_spelling_wins(self):
        """Case-insensitive duplicates keep the first spelling."""
        assert normalize_tag_names(["Rust", " rust ", "RUST", "Go"]) == ["Rust", "Go"]

    def test_blank_names_dropped(self):
        """Blank names are dropped."""
        assert normalize_tag_names(["", "  "]) == []


class TestResolveTags:
    def test_existing_ids_and_names(self, actor, python_tag):
        """Picked ids and typed names resolve to existing tags."""
        other = Tag.objects.create(name="Django", slug="django")
        result = resolve_tags(actor, [python_tag.pk], ["django"])
        assert result.resolved_tag_ids == [python_tag.pk, other.pk]
        assert result.pending_tag_slugs == []
        assert TagRequest.objects.count() == 0

    def test_name_matches_case_insensitively(self, actor, db):
        """A name match counts even when the slug differs."""
        tag = Tag.objects.create(name="GraphQL", slug="gql")
        result = resolve_tags(actor, [], ["graphql"])
        assert result.resolved_tag_ids == [tag.pk]

    def test_duplicate_ids_collapse(self, actor, python_tag):
        """Repeated ids are resolved once."""
        result = resolve_tags(actor, [python_tag.pk, python_tag.pk], ["Python"])
        assert result.resolved_tag_ids == [python_tag.pk]

    def test_unknown_id_rejected(self, actor, python_tag):
        """An unknown tag id is an input error."""
        with pytest.raises(BadRequestError) as excinfo:
            resolve_tags(actor, [python_tag.pk, 999999], [])
        assert excinfo.value.field == "tag_ids"

    def test_malformed_id_rejected(self, actor, db):
        """A non-numeric tag id is an input error."""
        with pytest.raises(BadRequestError):
            resolve_tags(actor, ["abc"], [])

    def test_user_files_request(self, actor):
        """Unknown names become tag requests for contributors."""
        result = resolve_tags(actor, [], ["Rust"])
        assert result.resolved_tag_ids == []
        assert result.pending_tag_slugs == ["rust"]
        request = TagRequest.objects.get()
        assert request.slug == "rust"
        assert request.name == "Rust"
        assert request.requested_by_id == actor.id
        assert Tag.objects.count() == 0

    def test_second_user_reuses_pending_request(self, actor, other_actor):
        """A second contributor shares the pending request."""
        resolve_tags(actor, [], ["Rust"])
        result = resolve_tags(other_actor, [], ["rust"])
        assert result.pending_tag_slugs == ["rust"]
        assert TagRequest.objects.filter(status=ReviewStatus.PENDING).count() == 1

    def test_names_sharing_a_slug_collapse(self, actor):
        """Names that slug alike resolve once."""
        result = resolve_tags(actor, [], ["Go", "go "])
        assert result.pending_tag_slugs == ["go"]
        assert TagRequest.objects.count() == 1

    def test_admin_creates_missing_tags(self, admin):
        """Admins create missing tags on the spot."""
        result = resolve_tags(admin, [], ["Rust"])
        tag = Tag.objects.get(slug="rust")
        assert result.resolved_tag_ids == [tag.pk]
        assert result.created_tags == [tag]
        assert result.pending_tag_slugs == []
        assert tag.approved_by_id == admin.id

    def test_admin_closes_pending_requests(self, admin, actor):
        """An admin-created tag closes pending requests."""
        resolve_tags(actor, [], ["Rust"])
        resolve_tags(admin, [], ["Rust"])
        request = TagRequest.objects.get()
        assert request.status == ReviewStatus.APPROVED
        assert request.reviewed_by_id == admin.id


class TestPublishTag:
    def test_reuses_existing_row(self, admin, python_tag):
        """Publishing an existing slug reuses the row."""
        tag, created = publish_tag("python", "python", approver_id=admin.id)
        assert tag == python_tag
        assert not created
        assert Tag.objects.count() == 1


class TestResolveApprovedTags:
    def test_creates_nothing(self, db, python_tag):
        """Approved-only resolution never creates tags or requests."""
        result = resolve_approved_tags([python_tag.pk], ["Python", "Rust"])
        assert result.resolved_tag_ids == [python_tag.pk]
        assert result.pending_tag_slugs == ["rust"]
        assert Tag.objects.count() == 1
        assert TagRequest.objects.count() == 0

    def test_deleted_ids_rejected(self, db, python_tag):
        """Ids deleted since the revision was filed are an input error."""
        with pytest.raises(BadRequestError) as excinfo:
            resolve_approved_tags([python_tag.pk, 424242], [])
        assert excinfo.value.field == "tag_ids"
