"""
Caller-facing errors raised by the attendance and roster services.

Every error carries the HTTP status the API answers with and a stable
machine-readable code; `backend.main` renders them as
`{"detail": message, "code": code}`.
"""


class RollcallError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


# Request validation
class InvalidRosterFile(RollcallError):
    code = "invalid_roster_file"


# Not found
class NotFound(RollcallError):
    status_code = 404
    code = "not_found"


class EventNotFound(NotFound):
    code = "event_not_found"

    def __init__(self, message: str = "Event not found"):
        super().__init__(message)


class ParticipantNotFound(NotFound):
    code = "participant_not_found"

    def __init__(self, message: str = "Participant not found"):
        super().__init__(message)


class CourseNotFound(NotFound):
    code = "course_not_found"

    def __init__(self, message: str = "Course not found"):
        super().__init__(message)


class HallNotFound(NotFound):
    code = "hall_not_found"

    def __init__(self, message: str = "Hall not found"):
        super().__init__(message)


# State conflicts
class NotRegisteredForEvent(RollcallError):
    code = "not_registered_for_event"

    def __init__(self, message: str = "Participant not registered for this event"):
        super().__init__(message)


class RestrictedCourseNotRegistered(RollcallError):
    code = "restricted_course_not_registered"

    def __init__(self, message: str = "Participant not registered for this restricted course"):
        super().__init__(message)


class AlreadyCheckedIn(RollcallError):
    status_code = 409
    code = "already_checked_in"

    def __init__(self, message: str = "Participant already checked in"):
        super().__init__(message)


class MustCheckInFirst(RollcallError):
    status_code = 409
    code = "must_check_in_first"

    def __init__(self, message: str = "Participant must check in before checking out"):
        super().__init__(message)


class AlreadyCheckedOut(RollcallError):
    status_code = 409
    code = "already_checked_out"

    def __init__(self, message: str = "Participant already checked out"):
        super().__init__(message)


class BadgeAlreadyAssigned(RollcallError):
    status_code = 409
    code = "badge_already_assigned"

    def __init__(self, message: str = "Participant already has a badge"):
        super().__init__(message)


class BadgeCodeTaken(RollcallError):
    status_code = 409
    code = "badge_code_taken"

    def __init__(self, message: str = "Badge code already in use"):
        super().__init__(message)


# Access scope
class EventScopeViolation(RollcallError):
    status_code = 403
    code = "event_scope_violation"

    def __init__(self, message: str = "Unauthorized for this event"):
        super().__init__(message)


def ensure_event_scope(event_id: int, scope_event_id: int | None) -> None:
    """Reject a request whose target event differs from the caller's bound event."""
    if scope_event_id is not None and int(event_id) != int(scope_event_id):
        raise EventScopeViolation()
