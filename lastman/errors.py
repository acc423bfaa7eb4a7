"""
Error taxonomy shared by services and the API.
Services raise these; the API maps them to HTTP responses in one place.
"""
from __future__ import annotations


class LmsError(Exception):
    """Base for every expected, caller-facing failure."""

    status_code = 500
    default_reason = "error"

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason


class ValidationError(LmsError, ValueError):
    """Missing or malformed input. No state change."""

    status_code = 400
    default_reason = "validation_failed"


class PolicyRejection(LmsError, ValueError):
    """Well-formed request refused by a game rule (deadline passed, contest not active, ...)."""

    status_code = 400
    default_reason = "policy_rejected"


class NotAuthenticated(LmsError):
    status_code = 401
    default_reason = "not_authenticated"


class PermissionDenied(LmsError):
    status_code = 403
    default_reason = "forbidden"


class NotFoundError(LmsError, LookupError):
    status_code = 404
    default_reason = "not_found"


class ConflictError(LmsError):
    """Uniqueness clash (duplicate invite token, already a member). Caller may retry."""

    status_code = 409
    default_reason = "conflict"


class UpstreamError(LmsError):
    """Match feed unreachable or returned an error."""

    status_code = 502
    default_reason = "upstream_failed"


class FeedNotConfigured(PolicyRejection):
    default_reason = "feed_not_configured"
