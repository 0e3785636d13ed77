"""
Error taxonomy for the incident-response core.

Every failure surfaced to a client carries a stable machine-readable `kind`
and a human message. Services raise these; the FastAPI exception handler in
`cera.main` renders them.
"""

from typing import Optional


class CeraError(Exception):
    """Base class for expected, client-visible failures."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, *, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind

    def to_dict(self):
        return {"kind": self.kind, "detail": self.message}


class BadRequestError(CeraError):
    """Malformed or missing required input."""
    kind = "bad_request"
    status_code = 400


class UnauthorizedError(CeraError):
    """Missing or invalid actor credential."""
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(CeraError):
    """Authenticated actor lacks the role or membership for the action."""
    kind = "forbidden"
    status_code = 403


class NotFoundError(CeraError):
    """Incident, user, notification or assignment entry does not exist."""
    kind = "not_found"
    status_code = 404


class ConflictError(CeraError):
    """Requested transition violates the incident or assignment state machine."""
    kind = "conflict"
    status_code = 409


class UpstreamError(CeraError):
    """Media store or notification delivery failure."""
    kind = "upstream_failure"
    status_code = 502
