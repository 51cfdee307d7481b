"""
Role resolution.

The engine never looks up roles on its own: views call ``resolve_actor`` once
per request and pass the resulting ``Actor`` into every operation.
"""
from dataclasses import dataclass

from .conf import blog_settings

ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass(frozen=True)
class Actor:
    """Identity and role of the caller for the duration of one request."""

    id: int
    role: str = ROLE_USER

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN


def actor_id(actor):
    """Return the actor id, or None for anonymous viewers."""
    return actor.id if actor is not None else None


def is_admin(actor):
    return actor is not None and actor.is_admin


def resolve_actor(user):
    """
    Build the Actor for an authenticated Django user.

    Creates the user's profile on first sight. Emails listed in
    ADMIN_EMAILS are promoted to admin. Returns None for anonymous users.
    """
    from .models import UserProfile

    if user is None or not user.is_authenticated:
        return None

    email = (getattr(user, "email", "") or "").lower()
    should_be_admin = bool(email) and email in blog_settings.ADMIN_EMAILS

    profile, created = UserProfile.objects.get_or_create(
        user=user,
        defaults={"role": ROLE_ADMIN if should_be_admin else ROLE_USER},
    )
    if should_be_admin and profile.role != ROLE_ADMIN:
        profile.role = ROLE_ADMIN
        profile.save(update_fields=["role"])

    return Actor(id=user.pk, role=profile.role)
