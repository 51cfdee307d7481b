"""
URL configuration for django-moderated-blog.

Include in your project urls.py:

    path('blog/', include('moderated_blog.urls')),
"""
from django.urls import path

from . import views

app_name = "moderated_blog"

urlpatterns = [
    # Feed and reading
    path("feed/", views.FeedView.as_view(), name="feed"),
    path("posts/published/", views.PublishedPostListView.as_view(), name="post_list"),
    path("posts/<int:pk>/", views.PostDetailView.as_view(), name="post_detail"),
    path("archive/", views.ArchiveView.as_view(), name="archive"),
    path("tags/", views.TagListView.as_view(), name="tag_list"),

    # Submissions
    path("posts/", views.PostCreateView.as_view(), name="post_create"),
    path("posts/<int:pk>/edit/", views.PostEditView.as_view(), name="post_edit"),
    path("posts/<int:pk>/like/", views.PostLikeToggleView.as_view(), name="post_like"),
    path("comments/", views.CommentCreateView.as_view(), name="comment_create"),
    path("comments/<int:pk>/edit/", views.CommentEditView.as_view(), name="comment_edit"),

    # Tags
    path("tags/requests/", views.TagRequestView.as_view(), name="tag_request"),
    path(
        "tags/requests/<int:pk>/withdraw/",
        views.TagRequestWithdrawView.as_view(),
        name="tag_request_withdraw",
    ),
    path("tags/<int:pk>/edit/", views.TagEditView.as_view(), name="tag_edit"),

    # Moderation
    path("moderation/queue/", views.PendingQueueView.as_view(), name="moderation_queue"),
    path(
        "moderation/<slug:target>/<int:pk>/<slug:action>/",
        views.ModerationView.as_view(),
        name="moderate",
    ),
]
