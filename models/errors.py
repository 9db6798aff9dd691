"""
Exception taxonomy shared by the store, the worker and the API.

Two families:
- Request-side errors (ValidationError, NotFoundError, ForbiddenError,
  ConflictError) carry an HTTP status and a machine-readable code; the API
  registers one exception handler for all of them.
- Execution-side errors (TransientError, PermanentError, StorageError) never
  reach a client directly. The worker turns them into retries or into the
  job's error_code/error_message.
"""


class JobEngineError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ── Request-side ────────────────────────────────────────────────

class ValidationError(JobEngineError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(JobEngineError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(JobEngineError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"


class ConflictError(JobEngineError):
    """A compare-and-swap lost: the record was not in the expected state."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, current_state: str | None = None):
        super().__init__(message)
        self.current_state = current_state


class InvalidTransitionError(JobEngineError):
    """The requested edge is not part of the job state machine."""

    code = "INVALID_TRANSITION"


# ── Execution-side ──────────────────────────────────────────────

class TransientError(JobEngineError):
    """Network / 5xx / timeout from the provider. Safe to retry."""

    code = "TRANSIENT"


class PermanentError(JobEngineError):
    """The provider rejected the request (4xx, policy filter). Never retried."""

    code = "PROVIDER_REJECTED"

    def __init__(self, message: str, provider_code: str | None = None):
        super().__init__(message)
        self.provider_code = provider_code


class StorageError(JobEngineError):
    """The asset could not be written to (or removed from) object storage."""

    status_code = 502
    code = "STORAGE_FAILURE"
