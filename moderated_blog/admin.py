"""
Django admin configuration for moderated_blog.

Approve/reject actions go through moderated_blog.api so admin-site moderation
runs the same transitions, reconciliation and search hooks as the JSON API.
"""
from django import forms
from django.contrib import admin, messages

from . import api
from .actors import is_admin, resolve_actor
from .exceptions import ModerationError
from .models import (
    Comment,
    CommentRevision,
    PendingTagSlug,
    Post,
    PostLike,
    PostRevision,
    PostTag,
    Tag,
    TagRequest,
    TagRevision,
    UserProfile,
)
from .slugs import normalize_user_slug


def run_for_each(modeladmin, request, queryset, operation, verb):
    """Apply ``operation(actor, pk)`` to each selected row and report."""
    actor = resolve_actor(request.user)
    done = 0
    for obj in queryset:
        try:
            operation(actor, obj.pk)
        except ModerationError as error:
            modeladmin.message_user(
                request, f"{obj}: {error.message}", level=messages.ERROR
            )
        else:
            done += 1
    modeladmin.message_user(request, f"{done} {verb}.")


class PostTagInline(admin.TabularInline):
    model = PostTag
    extra = 0
    raw_id_fields = ["tag"]


class PendingTagSlugInline(admin.TabularInline):
    model = PendingTagSlug
    extra = 0
    readonly_fields = ["slug"]

    def has_add_permission(self, request, obj=None):
        # Pending slugs are filed by tag resolution and cleared by reconciliation.
        return False


class TagAdminForm(forms.ModelForm):
    slug = forms.CharField(
        required=False,
        max_length=Tag._meta.get_field("slug").max_length,
        help_text="Lowercase letters and digits. Leave blank to derive from the name.",
    )

    class Meta:
        model = Tag
        fields = ["name", "slug"]

    def clean_slug(self):
        slug = normalize_user_slug(self.cleaned_data.get("slug"))
        if slug is None:
            raise forms.ValidationError("Slug can only contain lowercase letters and numbers.")
        return slug

    def clean_name(self):
        name = self.cleaned_data["name"]
        clashing = Tag.objects.filter(name__iexact=name.strip())
        if self.instance.pk:
            clashing = clashing.exclude(pk=self.instance.pk)
        if clashing.exists():
            raise forms.ValidationError("A tag with this name already exists.")
        return name


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    """
    Tags are created and renamed through moderated_blog.api.

    Saving here closes pending requests for the slug and links posts waiting
    on it, exactly as approving a tag request does.
    """

    form = TagAdminForm
    list_display = ["name", "slug", "post_count", "created_at"]
    search_fields = ["name", "slug"]
    readonly_fields = ["created_by", "approved_by", "created_at"]

    def is_moderator(self, request):
        return is_admin(resolve_actor(request.user))

    def has_add_permission(self, request):
        return super().has_add_permission(request) and self.is_moderator(request)

    def has_change_permission(self, request, obj=None):
        return super().has_change_permission(request, obj) and self.is_moderator(request)

    def save_model(self, request, obj, form, change):
        actor = resolve_actor(request.user)
        data = {"name": form.cleaned_data["name"], "slug": form.cleaned_data["slug"]}
        if change:
            api.request_tag_edit(actor, obj.pk, data)
        else:
            obj.pk = api.request_new_tag(actor, data["name"], slug=data["slug"]).pk
        obj.refresh_from_db()


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = [
        "title_preview",
        "author",
        "status",
        "view_count",
        "created_at",
        "published_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["title", "content", "author__username"]
    raw_id_fields = ["author"]
    date_hierarchy = "created_at"
    inlines = [PostTagInline, PendingTagSlugInline]
    readonly_fields = [
        "status",
        "view_count",
        "created_at",
        "updated_at",
        "published_at",
    ]

    fieldsets = (
        (None, {
            "fields": ("title", "slug", "excerpt", "content", "author")
        }),
        ("Moderation", {
            "fields": ("status", "published_at"),
        }),
        ("Metadata", {
            "fields": ("view_count", "created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["approve_posts", "reject_posts"]

    def title_preview(self, obj):
        """Truncated title for list display."""
        return obj.title[:60] + "..." if len(obj.title) > 60 else obj.title

    title_preview.short_description = "Title"

    @admin.action(description="Approve selected posts")
    def approve_posts(self, request, queryset):
        run_for_each(self, request, queryset, api.approve_post, "posts approved")

    @admin.action(description="Reject selected posts")
    def reject_posts(self, request, queryset):
        run_for_each(self, request, queryset, api.reject_post, "posts rejected")


class RevisionAdmin(admin.ModelAdmin):
    """Shared list screen for post, comment and tag revisions."""

    list_display = ["__str__", "author", "status", "created_at", "reviewed_at"]
    list_filter = ["status", "created_at"]
    raw_id_fields = ["author", "reviewed_by"]
    readonly_fields = ["patch", "status", "created_at", "reviewed_at", "reviewed_by"]
    actions = ["approve_revisions", "reject_revisions"]

    approve = None
    reject = None

    @admin.action(description="Approve selected revisions")
    def approve_revisions(self, request, queryset):
        run_for_each(self, request, queryset, type(self).approve, "revisions approved")

    @admin.action(description="Reject selected revisions")
    def reject_revisions(self, request, queryset):
        run_for_each(self, request, queryset, type(self).reject, "revisions rejected")


@admin.register(PostRevision)
class PostRevisionAdmin(RevisionAdmin):
    search_fields = ["post__title", "author__username"]
    approve = api.approve_post_edit
    reject = api.reject_post_edit


@admin.register(CommentRevision)
class CommentRevisionAdmin(RevisionAdmin):
    approve = api.approve_comment_edit
    reject = api.reject_comment_edit


@admin.register(TagRevision)
class TagRevisionAdmin(RevisionAdmin):
    search_fields = ["tag__name", "tag__slug"]
    approve = api.approve_tag_edit
    reject = api.reject_tag_edit


@admin.register(TagRequest)
class TagRequestAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "requested_by", "status", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["name", "slug", "requested_by__username"]
    readonly_fields = ["status", "created_at", "reviewed_at", "reviewed_by"]
    actions = ["approve_requests", "reject_requests"]

    @admin.action(description="Approve selected tag requests")
    def approve_requests(self, request, queryset):
        run_for_each(self, request, queryset, api.approve_tag_request, "requests approved")

    @admin.action(description="Reject selected tag requests")
    def reject_requests(self, request, queryset):
        run_for_each(self, request, queryset, api.reject_tag_request, "requests rejected")


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ["preview", "author", "post", "status", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["body", "author__username", "post__title"]
    raw_id_fields = ["post", "author", "parent", "reviewed_by"]
    readonly_fields = ["status", "approved_at", "created_at", "updated_at"]
    actions = ["approve_comments", "reject_comments"]

    @admin.action(description="Approve selected comments")
    def approve_comments(self, request, queryset):
        run_for_each(self, request, queryset, api.approve_comment, "comments approved")

    @admin.action(description="Reject selected comments")
    def reject_comments(self, request, queryset):
        run_for_each(self, request, queryset, api.reject_comment, "comments rejected")


@admin.register(PostLike)
class PostLikeAdmin(admin.ModelAdmin):
    list_display = ["user", "post", "created_at"]
    raw_id_fields = ["user", "post"]


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ["user", "role", "created_at"]
    list_filter = ["role"]
    search_fields = ["user__username", "user__email"]
