"""Engine error taxonomy"""


class RecurrenceValidationError(ValueError):
    """Malformed rule or descriptor, rejected before any write"""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class DatastoreUnavailable(RuntimeError):
    """The datastore cannot be reached; the whole invocation is safe to retry"""

    pass
