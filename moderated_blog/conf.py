"""
Configuration settings for django-moderated-blog.

Override these in your Django settings.py:

    MODERATED_BLOG = {
        'ADMIN_EMAILS': ['editor@example.com'],
        'SEARCH_INDEX_BACKEND': 'myproject.search.AlgoliaIndex',
        'FEED_MAX_LIMIT': 20,
        ...
    }
"""
from django.conf import settings

DEFAULTS = {
    # Roles
    "ADMIN_EMAILS": [],

    # Search indexing hook (dotted path to a SearchIndex subclass)
    "SEARCH_INDEX_BACKEND": "moderated_blog.search.LoggingSearchIndex",

    # Feed
    "FEED_DEFAULT_LIMIT": 9,
    "FEED_MAX_LIMIT": 20,
    "EDITED_THRESHOLD_SECONDS": 60,

    # Tags
    "TAG_NAME_MAX_LENGTH": 64,
    "TAG_SLUG_MAX_LENGTH": 64,
    "BULK_DELETE_MAX": 200,

    # Posts
    "POST_TITLE_MAX_LENGTH": 256,
    "POST_SLUG_MAX_LENGTH": 256,
    "EXCERPT_MAX_LENGTH": 500,

    # Comments
    "COMMENT_MAX_LENGTH": 2000,
}


class ModeratedBlogSettings:
    """
    Lazy settings object that reads from Django settings.

    Access via: from moderated_blog.conf import blog_settings
    """

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid moderated_blog setting: {name}")

        user_settings = getattr(settings, "MODERATED_BLOG", {})
        return user_settings.get(name, DEFAULTS[name])

    @property
    def ADMIN_EMAILS(self):
        """Return admin emails lowercased for comparison."""
        user_settings = getattr(settings, "MODERATED_BLOG", {})
        emails = user_settings.get("ADMIN_EMAILS", DEFAULTS["ADMIN_EMAILS"])
        if isinstance(emails, str):
            emails = emails.split(",")
        return [email.strip().lower() for email in emails if email.strip()]


blog_settings = ModeratedBlogSettings()
