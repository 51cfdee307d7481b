"""
Models for django-moderated-blog.

All models are importable from moderated_blog.models:

    from moderated_blog.models import Post, Tag, TagRequest, Comment
"""
from .base import PostStatus, ReviewStatus
from .posts import Tag, Post, PostTag, PendingTagSlug, PostRevision, PostLike
from .tags import TagRequest, TagRevision
from .comments import Comment, CommentRevision
from .profiles import UserProfile

__all__ = [
    # Statuses
    "PostStatus",
    "ReviewStatus",
    # Posts
    "Tag",
    "Post",
    "PostTag",
    "PendingTagSlug",
    "PostRevision",
    "PostLike",
    # Tags
    "TagRequest",
    "TagRevision",
    # Comments
    "Comment",
    "CommentRevision",
    # Roles
    "UserProfile",
]
