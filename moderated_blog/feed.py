"""
Feed assembly.

Builds one page of the post feed for a viewer: visibility by role, optional
tag and date filters, newest first, keyset-paginated on
``coalesce(published_at, created_at)`` with the post id as tie-breaker.
"""
import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass, field

from django.db.models import Count, Q
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .conf import blog_settings
from .models import Comment, Post, PostLike, PostStatus, PostTag, ReviewStatus, Tag

logger = logging.getLogger(__name__)

MATCH_ANY = "any"
MATCH_ALL = "all"


@dataclass(frozen=True)
class FeedCursor:
    date: datetime.datetime
    id: int

    def to_dict(self):
        return {"date": self.date.isoformat(), "id": self.id}


@dataclass
class FeedFilters:
    tag_slugs: list = field(default_factory=list)
    match: str = MATCH_ANY
    date_from: datetime.datetime = None
    date_to: datetime.datetime = None


@dataclass
class FeedPost:
    id: int
    slug: str
    title: str
    excerpt: str
    created_at: datetime.datetime
    published_at: datetime.datetime
    updated_at: datetime.datetime
    edited: bool
    status: str
    is_mine: bool
    tags: list
    stats: dict

    def to_dict(self):
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.excerpt,
            "createdAt": self.created_at.isoformat(),
            "publishedAt": self.published_at.isoformat() if self.published_at else None,
            "updatedAt": self.updated_at.isoformat(),
            "edited": self.edited,
            "status": self.status,
            "isMine": self.is_mine,
            "tags": self.tags,
            "stats": self.stats,
        }


@dataclass
class FeedPage:
    posts: list
    next_cursor: FeedCursor = None

    def to_dict(self):
        return {
            "posts": [post.to_dict() for post in self.posts],
            "nextCursor": self.next_cursor.to_dict() if self.next_cursor else None,
        }


def is_edited(created_at, updated_at):
    if created_at is None or updated_at is None:
        return False
    threshold = datetime.timedelta(seconds=blog_settings.EDITED_THRESHOLD_SECONDS)
    return updated_at - created_at > threshold


def visible_posts(viewer):
    """Posts ``viewer`` may list: everything for admins, own and published otherwise."""
    posts = Post.objects.all()
    if viewer is not None and viewer.is_admin:
        return posts
    if viewer is not None:
        return posts.filter(Q(status=PostStatus.PUBLISHED) | Q(author_id=viewer.id))
    return posts.filter(status=PostStatus.PUBLISHED)


def tagged_post_ids(tag_slugs, match):
    """
    Ids of posts carrying the requested tags, or None for no match.

    With ``match="all"`` every requested slug must be linked, so a slug
    with no tag behind it matches nothing.
    """
    slugs = list(dict.fromkeys(tag_slugs))
    tag_ids = list(Tag.objects.filter(slug__in=slugs).values_list("pk", flat=True))
    if not tag_ids:
        return None
    links = PostTag.objects.filter(tag_id__in=tag_ids).values("post_id").order_by()
    if match == MATCH_ALL:
        if len(tag_ids) != len(slugs):
            return None
        links = links.annotate(matched=Count("tag_id", distinct=True)).filter(
            matched=len(slugs)
        )
    post_ids = set(links.values_list("post_id", flat=True))
    return post_ids or None


def _group_tags(post_ids):
    tags = defaultdict(list)
    links = (
        PostTag.objects.filter(post_id__in=post_ids)
        .select_related("tag")
        .order_by("tag__name")
    )
    for link in links:
        tags[link.post_id].append({"name": link.tag.name, "slug": link.tag.slug})
    return tags


def _count_by_post(queryset, post_ids):
    rows = (
        queryset.filter(post_id__in=post_ids)
        .values("post_id")
        .annotate(total=Count("pk"))
        .order_by()
    )
    return {row["post_id"]: row["total"] for row in rows}


def assemble_feed(viewer, filters=None, cursor=None, limit=None):
    """
    Return one FeedPage for ``viewer``.

    ``next_cursor`` is set only when more rows follow the page.
    """
    filters = filters or FeedFilters()
    if limit is None:
        limit = blog_settings.FEED_DEFAULT_LIMIT

    posts = visible_posts(viewer)
    if filters.tag_slugs:
        post_ids = tagged_post_ids(filters.tag_slugs, filters.match)
        if post_ids is None:
            return FeedPage(posts=[])
        posts = posts.filter(pk__in=post_ids)

    posts = posts.annotate(sort_key=Coalesce("published_at", "created_at"))
    if filters.date_from is not None:
        posts = posts.filter(sort_key__gte=filters.date_from)
    if filters.date_to is not None:
        posts = posts.filter(sort_key__lt=filters.date_to + datetime.timedelta(days=1))
    if cursor is not None:
        posts = posts.filter(
            Q(sort_key__lt=cursor.date) | Q(sort_key=cursor.date, pk__lt=cursor.id)
        )

    rows = list(posts.order_by("-sort_key", "-id")[:limit + 1])
    has_more = len(rows) > limit
    rows = rows[:limit]
    next_cursor = None
    if has_more and rows:
        next_cursor = FeedCursor(date=rows[-1].sort_key, id=rows[-1].pk)

    post_ids = [post.pk for post in rows]
    tags = _group_tags(post_ids)
    comment_counts = _count_by_post(
        Comment.objects.filter(status=ReviewStatus.APPROVED), post_ids
    )
    like_counts = _count_by_post(PostLike.objects.all(), post_ids)

    feed_posts = [
        FeedPost(
            id=post.pk,
            slug=post.slug,
            title=post.title,
            excerpt=post.excerpt,
            created_at=post.created_at,
            published_at=post.published_at,
            updated_at=post.updated_at or post.created_at,
            edited=is_edited(post.created_at, post.updated_at),
            status=post.status,
            is_mine=viewer is not None and post.author_id == viewer.id,
            tags=tags.get(post.pk, []),
            stats={
                "views": post.view_count,
                "likes": like_counts.get(post.pk, 0),
                "comments": comment_counts.get(post.pk, 0),
            },
        )
        for post in rows
    ]
    logger.debug("Feed page: %d posts, more=%s", len(feed_posts), has_more)
    return FeedPage(posts=feed_posts, next_cursor=next_cursor)


def _parse_moment(value, day_start=False):
    """
    Parse an ISO date or datetime; None when malformed.

    Bare dates mean midnight UTC. Naive datetimes are taken as UTC.
    """
    if not value:
        return None
    try:
        moment = parse_datetime(value)
        if moment is None:
            day = parse_date(value)
            if day is None:
                return None
            moment = datetime.datetime.combine(day, datetime.time.min)
    except ValueError:
        return None
    if day_start:
        moment = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment, datetime.timezone.utc)
    return moment


def parse_feed_params(query):
    """
    Read feed filters, cursor and limit from a query dict.

    Returns (filters, cursor, limit). Malformed dates, cursors and limits
    are ignored rather than rejected.
    """
    try:
        limit = int(query.get("limit", blog_settings.FEED_DEFAULT_LIMIT))
    except (TypeError, ValueError):
        limit = blog_settings.FEED_DEFAULT_LIMIT
    limit = min(max(limit, 1), blog_settings.FEED_MAX_LIMIT)

    tag_slugs = [slug.strip() for slug in query.get("tags", "").split(",") if slug.strip()]
    filters = FeedFilters(
        tag_slugs=tag_slugs,
        match=MATCH_ALL if query.get("match") == MATCH_ALL else MATCH_ANY,
        date_from=_parse_moment(query.get("from"), day_start=True),
        date_to=_parse_moment(query.get("to"), day_start=True),
    )

    cursor = None
    cursor_date = _parse_moment(query.get("cursorDate"))
    try:
        cursor_id = int(query.get("cursorId", ""))
    except (TypeError, ValueError):
        cursor_id = None
    if cursor_date is not None and cursor_id is not None:
        cursor = FeedCursor(date=cursor_date, id=cursor_id)
    return filters, cursor, limit
