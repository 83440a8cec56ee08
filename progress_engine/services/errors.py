"""Domain errors raised by the progress engine.

Services raise these; routers let them propagate and the handler in
progress_engine.api.errors maps each class to an HTTP status.  ``code`` is
a stable machine-readable string returned alongside the message.
"""

from __future__ import annotations


class ProgressError(Exception):
    code = "progress_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ProgressError):
    code = "validation_error"


class NotEnrolled(ProgressError):
    code = "not_enrolled"


class AlreadyEnrolled(ProgressError):
    code = "already_enrolled"


class AlreadyGranted(ProgressError):
    code = "already_granted"


class InactiveCohort(ProgressError):
    code = "inactive_cohort"


class LearnerNotActive(ProgressError):
    code = "learner_not_active"


class StorageConflict(ProgressError):
    """A uniqueness constraint rejected an insert.

    Only reconciliation swallows this; everywhere else it is converted
    into a caller-facing error.
    """

    code = "storage_conflict"


# --- not-found family ---


class NotFound(ProgressError):
    code = "not_found"


class NodeNotFound(NotFound):
    code = "node_not_found"


class LearnerNotFound(NotFound):
    code = "learner_not_found"


class CohortNotFound(NotFound):
    code = "cohort_not_found"


class BadgeNotFound(NotFound):
    code = "badge_not_found"


class GrantNotFound(NotFound):
    code = "grant_not_found"
