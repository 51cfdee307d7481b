"""
Tests for the search indexing hooks.
"""
import pytest

from moderated_blog import api
from moderated_blog.search import KIND_POST, KIND_TAG, SearchIndex, get_search_index


class RecordingIndex(SearchIndex):
    calls = []

    def upsert(self, entity_id, kind=KIND_POST):
        self.calls.append(("upsert", kind, entity_id))

    def remove(self, entity_id, kind=KIND_POST):
        self.calls.append(("remove", kind, entity_id))


class BrokenIndex(SearchIndex):
    def upsert(self, entity_id, kind=KIND_POST):
        raise RuntimeError("index down")

    def remove(self, entity_id, kind=KIND_POST):
        raise RuntimeError("index down")


@pytest.fixture
def recording_index(settings):
    settings.MODERATED_BLOG = {
        "ADMIN_EMAILS": ["admin@example.com"],
        "SEARCH_INDEX_BACKEND": "tests.test_search.RecordingIndex",
    }
    RecordingIndex.calls = []
    return RecordingIndex


def test_default_backend(settings):
    """The logging backend is used when none is configured."""
    settings.MODERATED_BLOG = {}
    assert type(get_search_index()).__name__ == "LoggingSearchIndex"


def test_post_hooks_run_on_commit(recording_index, actor, admin, django_capture_on_commit_callbacks):
    """Post hooks fire after commit, not before."""
    post = api.submit_post(actor, title="Pending")
    assert recording_index.calls == []

    with django_capture_on_commit_callbacks(execute=True):
        api.approve_post(admin, post.pk)
    assert recording_index.calls == [("upsert", KIND_POST, post.pk)]

    with django_capture_on_commit_callbacks(execute=True):
        api.delete_post(admin, post.pk)
    assert recording_index.calls[-1] == ("remove", KIND_POST, post.pk)


def test_edits_index_only_when_applied(recording_index, actor, admin,
                                       django_capture_on_commit_callbacks):
    """Pending revisions do not touch the index."""
    post = api.approve_post(admin, api.submit_post(actor, title="Live").pk)
    recording_index.calls = []

    with django_capture_on_commit_callbacks(execute=True):
        revision = api.request_post_edit(actor, post.pk, {"title": "Live!"}).revision
    assert recording_index.calls == []

    with django_capture_on_commit_callbacks(execute=True):
        api.approve_post_edit(admin, revision.pk)
    assert recording_index.calls == [("upsert", KIND_POST, post.pk)]


def test_tag_hooks(recording_index, admin, django_capture_on_commit_callbacks):
    """Tag creation and deletion reach the index."""
    with django_capture_on_commit_callbacks(execute=True):
        tag = api.request_new_tag(admin, "Rust")
    assert ("upsert", KIND_TAG, tag.pk) in recording_index.calls

    with django_capture_on_commit_callbacks(execute=True):
        api.delete_tag(admin, tag.pk)
    assert recording_index.calls[-1] == ("remove", KIND_TAG, tag.pk)


def test_failures_are_logged(settings, admin, caplog, django_capture_on_commit_callbacks):
    """A failing index is logged and the write still succeeds."""
    settings.MODERATED_BLOG = {
        "ADMIN_EMAILS": ["admin@example.com"],
        "SEARCH_INDEX_BACKEND": "tests.test_search.BrokenIndex",
    }
    with django_capture_on_commit_callbacks(execute=True):
        post = api.submit_post(admin, title="Still published")
    assert post.status == "published"
    assert "search upsert failed" in caplog.text
