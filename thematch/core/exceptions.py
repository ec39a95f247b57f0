"""Error taxonomy shared by the engine, the store and the API layer."""


class EngineError(Exception):
    """Base error. Every subclass is safe to show to an API caller."""

    status_code = 400
    default_code = "engine_error"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class InvalidInput(EngineError):
    """Malformed or out-of-range input, rejected before any work is done."""

    status_code = 400
    default_code = "invalid_input"


class StructuralConflict(EngineError):
    """The request is well formed but the bracket is not in a state that allows it."""

    status_code = 409
    default_code = "structural_conflict"


class ConcurrentConflict(EngineError):
    """Another submission already decided this match differently (lost the race)."""

    status_code = 409
    default_code = "concurrent_conflict"


class NotFound(EngineError):
    status_code = 404
    default_code = "not_found"


class PermissionDenied(EngineError):
    status_code = 403
    default_code = "permission_denied"


class TransientStoreFailure(EngineError):
    """Raised by the store once its retry budget, deadline or cancellation is hit."""

    status_code = 503
    default_code = "store_unavailable"

    def __init__(self, message: str = "Service temporarily unavailable. Please try again later.", code: str = None):
        super().__init__(message, code)


class ExpiredCredentials(Exception):
    """A short-lived store credential expired mid-request; the store retries these."""
