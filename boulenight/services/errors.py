"""
Service-layer exceptions.

Routers translate these into HTTP errors:
- NotFoundError            -> 404
- *ValidationError / AttendanceError -> 400
- *ConflictError           -> 409
"""


class NotFoundError(Exception):
    """Raised when a night, round, match, player or team does not exist"""

    pass


class DrawError(Exception):
    """Base exception for round draw errors"""

    pass


class DrawValidationError(DrawError):
    """Attendance or ranking pool cannot produce a valid draw"""

    pass


class RoundConflictError(DrawError):
    """A round with this number already exists for the night"""

    pass


class ResultError(Exception):
    """Base exception for match result reporting"""

    pass


class ResultValidationError(ResultError):
    """Malformed score or reporter is not a participant"""

    pass


class ResultConflictError(ResultError):
    """The match can no longer take participant reports"""

    pass


class AttendanceError(Exception):
    """Attendance change rejected (cap exceeded, unknown player)"""

    pass


class AttendanceConflictError(AttendanceError):
    """Attendance changed concurrently or the night is already drawn"""

    pass
