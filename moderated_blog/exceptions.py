"""
Errors raised by the moderation engine.

Each error carries a stable ``code``, the HTTP ``status`` the views answer
with, and a user-facing ``kind``:

- "validation": fixable by changing the input
- "authorization": resubmitting will not help
- "conflict": a specific ``field`` (usually slug or name) caused the failure
"""


class ModerationError(Exception):
    """Base class for engine errors."""

    code = "BAD_REQUEST"
    status = 400
    kind = "validation"
    default_message = "Invalid request."

    def __init__(self, message=None, field=None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def as_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "kind": self.kind,
            "field": self.field,
        }


class BadRequestError(ModerationError):
    """Malformed or empty input, unknown tag id, invalid parent comment."""


class NotFoundError(ModerationError):
    code = "NOT_FOUND"
    status = 404
    kind = "not_found"
    default_message = "Not found."


class ForbiddenError(ModerationError):
    """Actor lacks ownership or the admin role for the transition."""

    code = "FORBIDDEN"
    status = 403
    kind = "authorization"
    default_message = "You are not allowed to do that."


class ConflictError(ModerationError):
    """Slug collision or duplicate pending tag request."""

    code = "CONFLICT"
    status = 409
    kind = "conflict"
    default_message = "Conflicting change."
