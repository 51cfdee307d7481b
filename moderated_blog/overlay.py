"""
Revision overlay.

A contributor who proposed an edit sees their proposal (and its review
state) in place of the live content until an admin approves it. Everyone
else sees the live row. Nothing here writes to the database.
"""
from collections import defaultdict
from dataclasses import dataclass, field

from .models import CommentRevision, ReviewStatus

POST_DISPLAY_FIELDS = ("title", "excerpt", "content")
COMMENT_DISPLAY_FIELDS = ("body",)


@dataclass(frozen=True)
class DisplayEntity:
    """What a given viewer is shown for one entity."""

    id: int
    status: str
    values: dict = field(default_factory=dict)
    overlaid: bool = False
    revision_id: int = None
    revision_created_at: object = None

    def __getitem__(self, name):
        return self.values[name]


def _base(canonical, fields):
    if isinstance(canonical, DisplayEntity):
        return canonical.id, canonical.status, dict(canonical.values)
    return canonical.pk, canonical.status, {name: getattr(canonical, name) for name in fields}


def latest_revision(revisions, viewer):
    """The viewer's newest revision, ties broken by id."""
    if viewer is None:
        return None
    own = [revision for revision in revisions if revision.author_id == viewer.id]
    if not own:
        return None
    return max(own, key=lambda revision: (revision.created_at, revision.pk))


def effective(canonical, revisions, viewer, fields):
    """
    Entity as ``viewer`` should see it.

    Only the viewer's latest revision matters. An approved one is already
    part of the canonical row; a pending or rejected one replaces the fields
    it carries and the displayed status.
    """
    entity_id, status, values = _base(canonical, fields)
    revision = latest_revision(revisions, viewer)
    if revision is None or revision.status == ReviewStatus.APPROVED:
        return DisplayEntity(id=entity_id, status=status, values=values)

    for name, value in revision.get_patch().items():
        if name in fields:
            values[name] = value
    return DisplayEntity(
        id=entity_id,
        status=revision.status,
        values=values,
        overlaid=True,
        revision_id=revision.pk,
        revision_created_at=revision.created_at,
    )


def effective_post(post, viewer):
    revisions = []
    if viewer is not None:
        revisions = list(post.revisions.filter(author_id=viewer.id)[:1])
    return effective(post, revisions, viewer, POST_DISPLAY_FIELDS)


def effective_comments(comments, viewer):
    """Overlay a list of comments with one revision query."""
    comments = list(comments)
    by_comment = defaultdict(list)
    if viewer is not None and comments:
        revisions = CommentRevision.objects.filter(
            comment_id__in=[comment.pk for comment in comments],
            author_id=viewer.id,
        )
        for revision in revisions:
            by_comment[revision.comment_id].append(revision)
    return [
        effective(comment, by_comment[comment.pk], viewer, COMMENT_DISPLAY_FIELDS)
        for comment in comments
    ]
