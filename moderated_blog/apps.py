"""Django app configuration for moderated_blog."""
from django.apps import AppConfig


class ModeratedBlogConfig(AppConfig):
    """Configuration for the moderated blog app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "moderated_blog"
    verbose_name = "Moderated Blog"
