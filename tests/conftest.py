"""
Shared fixtures for django-moderated-blog tests.
"""
import pytest
from django.contrib.auth import get_user_model

from moderated_blog.actors import ROLE_ADMIN, resolve_actor

User = get_user_model()


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username="testuser",
        email="test@example.com",
        password="testpass123",
    )


@pytest.fixture
def other_user(db):
    return User.objects.create_user(
        username="otheruser",
        email="other@example.com",
        password="testpass123",
    )


@pytest.fixture
def admin_user(db):
    """A user whose email is listed in ADMIN_EMAILS."""
    return User.objects.create_user(
        username="editor",
        email="admin@example.com",
        password="testpass123",
    )


@pytest.fixture
def actor(user):
    return resolve_actor(user)


@pytest.fixture
def other_actor(other_user):
    return resolve_actor(other_user)


@pytest.fixture
def admin(admin_user):
    actor = resolve_actor(admin_user)
    assert actor.role == ROLE_ADMIN
    return actor

