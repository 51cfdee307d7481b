"""
Tag approval reconciliation.

Posts may name tags that do not exist yet; those names are kept as pending
slugs on the post. Once a tag with that slug becomes real, every post that
asked for it gets linked and the slug is dropped from that post's list.
"""
import logging

from django.db import transaction

from .models import PendingTagSlug, Post, PostStatus, PostTag, Tag
from .search import schedule_upsert

logger = logging.getLogger(__name__)


@transaction.atomic
def on_tag_approved(tag):
    """
    Link every post waiting on ``tag.slug`` to the tag.

    Safe to run more than once: links that already exist are kept and the
    slug is removed per post. Returns the ids of the affected posts.
    """
    waiting = PendingTagSlug.objects.filter(slug=tag.slug)
    post_ids = sorted(set(waiting.values_list("post_id", flat=True)))
    if not post_ids:
        return []

    PostTag.objects.bulk_create(
        [PostTag(post_id=post_id, tag_id=tag.pk) for post_id in post_ids],
        ignore_conflicts=True,
    )
    PendingTagSlug.objects.filter(slug=tag.slug, post_id__in=post_ids).delete()

    published = Post.objects.filter(pk__in=post_ids, status=PostStatus.PUBLISHED)
    for post_id in published.values_list("pk", flat=True):
        schedule_upsert(post_id)

    logger.info("Linked tag %s to %d waiting posts", tag.slug, len(post_ids))
    return post_ids


@transaction.atomic
def link_pending_tags(post):
    """
    Link the pending slugs of one post that are real tags by now.

    Slugs without a tag stay pending. Returns the tags that were linked.
    """
    slugs = post.pending_tag_slugs
    if not slugs:
        return []

    tags = list(Tag.objects.filter(slug__in=slugs))
    if tags:
        PostTag.objects.bulk_create(
            [PostTag(post=post, tag=tag) for tag in tags],
            ignore_conflicts=True,
        )
        PendingTagSlug.objects.filter(
            post=post, slug__in=[tag.slug for tag in tags]
        ).delete()
    return tags
