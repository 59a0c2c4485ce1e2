"""
equiptrack Errors

Every failure is scoped to the single requested operation and leaves
committed state untouched. Callers branch on the class (or on ``code``
at the HTTP edge), never on the message.
"""


class TicketingError(Exception):
    """Base for all rule violations raised by the core."""

    code = "ticketing_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class ValidationError(TicketingError):
    """Malformed input. Raised before any mutation."""

    code = "validation_error"
    http_status = 422


class NotFoundError(TicketingError):
    """Referenced ticket, engineer, organization or association is missing."""

    code = "not_found"
    http_status = 404


class ConflictError(TicketingError):
    """
    A concurrent mutation won the race, or the write would break the
    single-active-assignment invariant.

    Re-fetch current state and retry with updated assumptions.
    """

    code = "conflict"
    http_status = 409
    retryable = True


class InvalidTransitionError(TicketingError):
    """Target status is not reachable from the current status."""

    code = "invalid_transition"
    http_status = 409


class MissingAssignmentError(TicketingError):
    """Transition into ``assigned`` without an active assignment."""

    code = "missing_assignment"
    http_status = 409


class NoEligibleEngineerError(TicketingError):
    """Every tier came back empty, or no engineer satisfied the policy."""

    code = "no_eligible_engineer"
    http_status = 404


class GraphUnavailableError(TicketingError):
    """Organization graph read timed out."""

    code = "graph_unavailable"
    http_status = 503
    retryable = True
