"""
Stored roles for django-moderated-blog.
"""
from django.conf import settings
from django.db import models


class UserProfile(models.Model):
    """Role of a user inside the blog (admin or regular contributor)."""

    ROLE_CHOICES = [
        ("admin", "Admin"),
        ("user", "User"),
    ]

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blog_profile",
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="user")
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user} ({self.role})"
