"""
Search indexing hook.

The engine only tells the index what changed; the index itself lives
outside this app. Calls are deferred until the surrounding transaction
commits and failures are logged, never raised: an approval stays approved
even when indexing is down, and the index can be rebuilt later.
"""
import logging

from django.db import transaction
from django.utils.module_loading import import_string

from .conf import blog_settings

logger = logging.getLogger(__name__)

KIND_POST = "post"
KIND_TAG = "tag"


class SearchIndex:
    """Interface for search backends."""

    def upsert(self, entity_id, kind=KIND_POST):
        raise NotImplementedError

    def remove(self, entity_id, kind=KIND_POST):
        raise NotImplementedError


class LoggingSearchIndex(SearchIndex):
    """Default backend: records the calls in the log and does nothing else."""

    def upsert(self, entity_id, kind=KIND_POST):
        logger.debug("search upsert %s %s", kind, entity_id)

    def remove(self, entity_id, kind=KIND_POST):
        logger.debug("search remove %s %s", kind, entity_id)


def get_search_index():
    backend = import_string(blog_settings.SEARCH_INDEX_BACKEND)
    return backend()


def _run(method_name, entity_id, kind):
    try:
        index = get_search_index()
        getattr(index, method_name)(entity_id, kind=kind)
    except Exception:
        logger.warning(
            "search %s failed for %s %s", method_name, kind, entity_id, exc_info=True
        )


def schedule_upsert(entity_id, kind=KIND_POST):
    transaction.on_commit(lambda: _run("upsert", entity_id, kind))


def schedule_remove(entity_id, kind=KIND_POST):
    transaction.on_commit(lambda: _run("remove", entity_id, kind))
