"""Error taxonomy shared by the lifecycle manager, gateway and schema coordinator.

Services raise these exceptions; the HTTP layer maps each ``kind`` to a status
code. ``LinkUnavailable`` is the single outcome for every token-scoped denial:
unknown, inactive or expired tokens, missing permission bits and vanished
projects all look identical to the caller. The denial reason is kept on the
exception for logging only.
"""

from enum import StrEnum
from typing import ClassVar


class LinkDenial(StrEnum):
    UNKNOWN_TOKEN = "unknown_token"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    PERMISSION_DENIED = "permission_denied"
    PROJECT_MISSING = "project_missing"


class SharingError(Exception):
    """Base class for failures that resolve to a client-facing error kind."""

    kind: ClassVar[str] = "error"
    title: ClassVar[str] = "Operation failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(SharingError):
    kind = "unauthenticated"
    title = "Developer authentication required"


class Forbidden(SharingError):
    kind = "forbidden"
    title = "Access denied"


class NotFound(SharingError):
    kind = "not_found"
    title = "Not found"


class ValidationFailed(SharingError):
    kind = "validation"
    title = "Invalid request"


class UpstreamFailure(SharingError):
    """The external data-access service rejected or failed a call."""

    kind = "upstream_failure"
    title = "Operation failed"

    def __init__(
        self,
        message: str,
        *,
        upstream_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.upstream_message = upstream_message
        self.status_code = status_code


class LinkUnavailable(NotFound):
    """A shared link cannot be used for the requested operation."""

    title = "Invalid or expired link"
    MESSAGE: ClassVar[str] = "The shared link is invalid, has expired, or does not allow this operation"

    def __init__(self, reason: LinkDenial) -> None:
        super().__init__(self.MESSAGE)
        self.reason = reason


__all__ = [
    "Forbidden",
    "LinkDenial",
    "LinkUnavailable",
    "NotFound",
    "SharingError",
    "Unauthenticated",
    "UpstreamFailure",
    "ValidationFailed",
]
