"""
Tag resolution.

Turns the tags a contributor picked (existing tag ids) and typed (free-text
names) into the set of tag ids to link, plus the slugs still waiting for an
approved tag.

Admins create missing tags on the spot. Everyone else files a tag request,
at most one pending per slug, and the post keeps the slug as pending until
the tag is approved (see moderated_blog.reconcile).
"""
import functools
import logging
import operator
from dataclasses import dataclass, field

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import BadRequestError
from .models import ReviewStatus, Tag, TagRequest
from .reconcile import on_tag_approved
from .search import KIND_TAG, schedule_upsert
from .slugs import generate_tag_slug, normalize_tag_name

logger = logging.getLogger(__name__)


@dataclass
class TagResolution:
    resolved_tag_ids: list
    pending_tag_slugs: list
    created_tags: list = field(default_factory=list)


def validate_tag_ids(tag_ids):
    """Deduplicate tag ids and check they all exist."""
    try:
        unique_ids = list(dict.fromkeys(int(tag_id) for tag_id in (tag_ids or []) if tag_id))
    except (TypeError, ValueError):
        raise BadRequestError("Invalid tag selection.", field="tag_ids")

    if unique_ids:
        found = Tag.objects.filter(pk__in=unique_ids).count()
        if found != len(unique_ids):
            raise BadRequestError("Invalid tag selection.", field="tag_ids")
    return unique_ids


def normalize_tag_names(tag_names):
    """
    Normalize names and drop case-insensitive duplicates.

    The first spelling of a name wins.
    """
    by_key = {}
    for raw in tag_names or []:
        name = normalize_tag_name(raw)
        if name and name.casefold() not in by_key:
            by_key[name.casefold()] = name
    return list(by_key.values())


def slug_map_for(names):
    """Map slug -> name; names sharing a slug collapse to the first."""
    slug_map = {}
    for name in names:
        slug_map.setdefault(generate_tag_slug(name), name)
    return slug_map


def match_existing(slug_map):
    """
    Split ``slug_map`` into tags that exist and (slug, name) pairs that don't.

    A tag matching by name but not by slug still counts as existing.
    """
    if not slug_map:
        return {}, []

    query = functools.reduce(
        operator.or_,
        [Q(name__iexact=name) for name in slug_map.values()],
        Q(slug__in=list(slug_map)),
    )
    existing = list(Tag.objects.filter(query))
    by_slug = {tag.slug: tag for tag in existing}
    by_name = {tag.name.casefold(): tag for tag in existing}

    found = {}
    missing = []
    for slug, name in slug_map.items():
        tag = by_slug.get(slug) or by_name.get(name.casefold())
        if tag is not None:
            found[slug] = tag
        else:
            missing.append((slug, name))
    return found, missing


def publish_tag(name, slug, approver_id, created_by_id=None):
    """
    Make a tag real and run everything that depends on it.

    Creates the tag (or reuses the row a concurrent writer inserted first),
    closes pending requests for the slug, and links posts waiting on it.
    Returns (tag, created).
    """
    try:
        with transaction.atomic():
            tag = Tag.objects.create(
                name=name,
                slug=slug,
                created_by_id=created_by_id or approver_id,
                approved_by_id=approver_id,
            )
        created = True
    except IntegrityError:
        tag = Tag.objects.get(slug=slug)
        created = False

    closed = TagRequest.objects.filter(slug=slug, status=ReviewStatus.PENDING).update(
        status=ReviewStatus.APPROVED,
        reviewed_at=timezone.now(),
        reviewed_by_id=approver_id,
    )
    on_tag_approved(tag)
    if created:
        schedule_upsert(tag.pk, kind=KIND_TAG)
        logger.info("Created tag %s (closed %d pending requests)", slug, closed)
    return tag, created


def file_tag_request(actor, name, slug):
    """
    Insert a pending request unless one exists for the slug.

    Returns the new request, or None when another pending request already
    covers the slug.
    """
    try:
        with transaction.atomic():
            return TagRequest.objects.create(name=name, slug=slug, requested_by_id=actor.id)
    except IntegrityError:
        logger.debug("Tag request for %s already pending", slug)
        return None


@transaction.atomic
def resolve_tags(actor, tag_ids=None, tag_names=None):
    """
    Resolve picked ids and typed names for ``actor``.

    Raises BadRequestError when a tag id does not exist.
    """
    resolved = validate_tag_ids(tag_ids)
    found, missing = match_existing(slug_map_for(normalize_tag_names(tag_names)))
    resolved.extend(tag.pk for tag in found.values())

    created_tags = []
    pending_slugs = []
    if actor.is_admin:
        for slug, name in missing:
            tag, created = publish_tag(name, slug, approver_id=actor.id)
            resolved.append(tag.pk)
            if created:
                created_tags.append(tag)
    elif missing:
        already_pending = set(
            TagRequest.objects.filter(
                slug__in=[slug for slug, _ in missing],
                status=ReviewStatus.PENDING,
            ).values_list("slug", flat=True)
        )
        for slug, name in missing:
            if slug not in already_pending:
                file_tag_request(actor, name, slug)
            pending_slugs.append(slug)

    logger.debug(
        "Resolved tags for %s: ids=%s pending=%s", actor.id, resolved, pending_slugs
    )
    return TagResolution(
        resolved_tag_ids=list(dict.fromkeys(resolved)),
        pending_tag_slugs=pending_slugs,
        created_tags=created_tags,
    )


def resolve_approved_tags(tag_ids=None, tag_names=None):
    """
    Resolve against approved tags only, creating nothing.

    Used when an admin approves a contributor's revision: names that still
    have no tag come back as pending slugs instead of being force-created,
    so the contributor's tag proposals keep their own review. Raises
    BadRequestError when a picked tag has been deleted since.
    """
    resolved = validate_tag_ids(tag_ids)
    found, missing = match_existing(slug_map_for(normalize_tag_names(tag_names)))
    resolved.extend(tag.pk for tag in found.values())
    return TagResolution(
        resolved_tag_ids=list(dict.fromkeys(resolved)),
        pending_tag_slugs=[slug for slug, _ in missing],
    )
