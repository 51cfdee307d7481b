"""
Moderation state machine shared by posts, comments and tags.

Every family (see moderated_blog.families) moves through the same states:

    new entity:  pending -> published/approved | rejected
    revision:    pending -> approved | rejected

Terminal states never change again. Repeating the transition that produced
the current state is a no-op; the opposite transition is an error.
Resubmitting means filing a new row.

The functions here hold the rules; the family descriptor says which models
and fields are involved and what happens around each transition.
"""
import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction

from .exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from .models import ReviewStatus
from .patches import Patch

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    """Outcome of request_edit: applied directly, or filed as a revision."""

    applied: bool
    entity: object = None
    revision: object = None


class EntityFamily:
    """
    Descriptor for one family of moderated entities.

    Subclasses fill in the models and override the hooks they need.
    """

    label = None
    model = None
    proposal_model = None
    revision_model = None
    parent_field = None
    fields = ()

    pending_status = ReviewStatus.PENDING
    approved_status = ReviewStatus.APPROVED
    rejected_status = ReviewStatus.REJECTED

    def _get(self, model, pk, what, lock=False):
        queryset = model.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"{what} not found.")

    def get(self, pk, lock=False):
        return self._get(self.model, pk, self.label.capitalize(), lock=lock)

    def get_proposal(self, pk, lock=False):
        return self._get(self.proposal_model, pk, self.label.capitalize(), lock=lock)

    def get_revision(self, pk, lock=False):
        return self._get(self.revision_model, pk, "Revision", lock=lock)

    def may_edit(self, actor, entity):
        return actor.is_admin or entity.author_id == actor.id

    def prepare_patch(self, actor, entity, patch):
        """Validate and normalize a patch. Raise ModerationError on bad input."""
        return patch

    def stage_revision_patch(self, actor, entity, patch):
        """Final shape of a patch before it is stored as a revision."""
        return patch

    def apply_direct(self, actor, entity, patch):
        """Apply an admin's edit to the canonical row."""
        raise NotImplementedError

    def apply_revision(self, actor, entity, patch):
        """Apply an approved revision to the canonical row."""
        return self.apply_direct(actor, entity, patch)

    def approve_proposal(self, actor, proposal):
        raise NotImplementedError

    def reject_proposal(self, actor, proposal, note=""):
        raise NotImplementedError

    def cascade(self, entity):
        """Querysets to delete, in order, before the entity itself."""
        return []

    def after_delete(self, entity_id):
        pass


def require_actor(actor):
    if actor is None:
        raise ForbiddenError("Sign in required.")


def require_admin(actor):
    if actor is None or not actor.is_admin:
        raise ForbiddenError("Admin only.")


def should_transition(obj, target, pending):
    """
    True if ``obj`` must move to ``target`` now.

    False when it is already there. Raises when it reached the other
    terminal state.
    """
    if obj.status == target:
        return False
    if obj.status != pending:
        raise BadRequestError(f"Already {obj.status}.", field="status")
    return True


def find_by_key(model, author_field, author_id, idempotency_key):
    if not idempotency_key:
        return None
    return model.objects.filter(
        **{f"{author_field}_id": author_id, "idempotency_key": idempotency_key}
    ).first()


def create_once(model, author_field, author_id, idempotency_key=None,
                conflict_message="Duplicate submission detected.", conflict_field=None,
                **values):
    """
    Insert a row, keyed by (author, idempotency_key) when a key is given.

    Returns (obj, created). A repeated key returns the first row. Any other
    uniqueness failure becomes a ConflictError.
    """
    existing = find_by_key(model, author_field, author_id, idempotency_key)
    if existing is not None:
        return existing, False
    try:
        with transaction.atomic():
            obj = model.objects.create(
                **{f"{author_field}_id": author_id, "idempotency_key": idempotency_key},
                **values,
            )
    except IntegrityError:
        existing = find_by_key(model, author_field, author_id, idempotency_key)
        if existing is not None:
            return existing, False
        raise ConflictError(conflict_message, field=conflict_field)
    return obj, True


@transaction.atomic
def request_edit(family, actor, entity_id, data, idempotency_key=None):
    """
    Propose (or, for admins, apply) an edit.

    Admin edits hit the canonical row immediately. Anyone else gets a pending
    revision holding only the fields they sent; the canonical row is not
    touched.
    """
    require_actor(actor)
    entity = family.get(entity_id)
    if not family.may_edit(actor, entity):
        raise ForbiddenError(f"Not your {family.label}.")

    if not actor.is_admin:
        existing = find_by_key(family.revision_model, "author", actor.id, idempotency_key)
        if existing is not None:
            return EditResult(applied=False, entity=entity, revision=existing)

    patch = Patch.from_data(data or {}, family.fields)
    if not patch:
        raise BadRequestError("At least one field must be provided.")
    patch = family.prepare_patch(actor, entity, patch)

    if actor.is_admin:
        family.apply_direct(actor, entity, patch)
        logger.info("Admin %s edited %s %s directly", actor.id, family.label, entity.pk)
        return EditResult(applied=True, entity=entity)

    patch = family.stage_revision_patch(actor, entity, patch)
    revision, _ = create_once(
        family.revision_model,
        "author",
        actor.id,
        idempotency_key,
        conflict_message="Duplicate update detected.",
        patch=patch.as_dict(),
        status=ReviewStatus.PENDING,
        **{family.parent_field: entity},
    )
    return EditResult(applied=False, entity=entity, revision=revision)


@transaction.atomic
def approve_edit(family, actor, revision_id):
    """Copy the revision's present fields onto the canonical row."""
    require_admin(actor)
    revision = family.get_revision(revision_id, lock=True)
    if not should_transition(revision, ReviewStatus.APPROVED, ReviewStatus.PENDING):
        return revision

    entity = getattr(revision, family.parent_field)
    family.apply_revision(actor, entity, revision.get_patch())

    update_fields = revision.mark_reviewed(ReviewStatus.APPROVED, actor.id)
    revision.save(update_fields=update_fields)
    logger.info("Approved %s revision %s", family.label, revision.pk)
    return revision


@transaction.atomic
def reject_edit(family, actor, revision_id, note=""):
    require_admin(actor)
    revision = family.get_revision(revision_id, lock=True)
    if not should_transition(revision, ReviewStatus.REJECTED, ReviewStatus.PENDING):
        return revision

    update_fields = revision.mark_reviewed(ReviewStatus.REJECTED, actor.id, note)
    revision.save(update_fields=update_fields)
    logger.info("Rejected %s revision %s", family.label, revision.pk)
    return revision


@transaction.atomic
def approve_new(family, actor, proposal_id):
    """Approve a freshly submitted entity (or tag request)."""
    require_admin(actor)
    proposal = family.get_proposal(proposal_id, lock=True)
    if not should_transition(proposal, family.approved_status, family.pending_status):
        return proposal

    result = family.approve_proposal(actor, proposal)
    logger.info("Approved %s %s", family.label, proposal.pk)
    return result


@transaction.atomic
def reject_new(family, actor, proposal_id, note=""):
    require_admin(actor)
    proposal = family.get_proposal(proposal_id, lock=True)
    if not should_transition(proposal, family.rejected_status, family.pending_status):
        return proposal

    result = family.reject_proposal(actor, proposal, note)
    logger.info("Rejected %s %s", family.label, proposal.pk)
    return result


@transaction.atomic
def delete(family, actor, entity_id):
    """Hard delete with dependents removed first."""
    require_admin(actor)
    entity = family.get(entity_id, lock=True)
    pk = entity.pk
    for queryset in family.cascade(entity):
        queryset.delete()
    entity.delete()
    family.after_delete(pk)
    logger.info("Deleted %s %s", family.label, pk)
    return pk
