from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional


class ServiceError(Exception):
    """Base error carrying an HTTP status and a message safe to show callers."""

    status_code = 500
    default_reason = "internal error"

    def __init__(
        self, reason: Optional[str] = None, *, details: Optional[Any] = None
    ) -> None:
        self.reason = reason or self.default_reason
        self.details = details
        super().__init__(self.reason)


class BadRequest(ServiceError):
    status_code = 400
    default_reason = "bad request"


class Forbidden(ServiceError):
    status_code = 403
    default_reason = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_reason = "not found"


class Conflict(ServiceError):
    status_code = 409
    default_reason = "conflict"


class ValidationFailed(BadRequest):
    default_reason = "traits do not match the identity schema"


class ProtectedFieldModified(Forbidden):
    default_reason = (
        "A field was modified that updates one or more credentials-related settings. "
        "This action was blocked because an unprivileged method was used to execute "
        "the update. This is either a configuration issue or a bug and should be "
        "reported to the system administrator."
    )


class DuplicateIdentity(Conflict):
    default_reason = "an identity with the same credential identifier already exists"


class ConcurrentUpdate(Conflict):
    default_reason = "the identity was modified concurrently"


class FlowExpired(BadRequest):
    default_reason = "The login request has expired."

    def __init__(self, since: timedelta) -> None:
        self.since = since
        super().__init__(
            f"The login request expired {since.total_seconds():.2f} seconds ago.",
            details={"since_seconds": since.total_seconds()},
        )


class OperationCancelled(ServiceError):
    status_code = 499
    default_reason = "operation cancelled"


class DeadlineExceeded(OperationCancelled):
    status_code = 504
    default_reason = "operation deadline exceeded"


class VerificationCodeError(RuntimeError):
    """Raised when the entropy source cannot produce a verification code."""
