from __future__ import annotations


class LifecycleError(Exception):
    """Base of the typed failures returned by the lifecycle operations."""

    kind = "LifecycleError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"kind": self.kind, "detail": self.message}


class NotFoundError(LifecycleError):
    kind = "NotFound"
    status_code = 404


class InputValidationError(LifecycleError):
    kind = "ValidationError"
    status_code = 400


class PreconditionFailedError(LifecycleError):
    kind = "PreconditionFailed"
    status_code = 409


class InvalidTransitionError(LifecycleError):
    kind = "InvalidTransition"
    status_code = 409


class ConcurrencyConflictError(LifecycleError):
    kind = "ConcurrencyConflict"
    status_code = 409
