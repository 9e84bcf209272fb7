class SchedulingError(ValueError):
    """Base class for user-visible scheduling errors."""


class SchedulingValidationError(SchedulingError):
    pass


class SchedulingNotFoundError(SchedulingError):
    pass


class SchedulingConflictError(SchedulingError):
    pass
