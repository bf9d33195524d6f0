"""
Domain exceptions raised by the order services.

Every exception carries the HTTP status the API layer should answer with, so the
centralized error handlers stay free of per-exception branching.
"""

from __future__ import annotations

from http import HTTPStatus


class ServiceError(Exception):
    """Base class for controlled failures."""

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status: HTTPStatus | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ServiceError):
    """Bad or missing input."""

    status = HTTPStatus.BAD_REQUEST


class NotFoundError(ServiceError):
    status = HTTPStatus.NOT_FOUND


class ConflictError(ServiceError):
    """Transition from the wrong source state, or a lost compare-and-set."""

    status = HTTPStatus.CONFLICT


class ForbiddenError(ServiceError):
    """The actor does not own the resource or lacks the scope for the action."""

    status = HTTPStatus.FORBIDDEN


class ExpiredError(ServiceError):
    """Receipt upload attempted after the payment deadline."""

    status = HTTPStatus.CONFLICT


class UnavailableOptionsError(ServiceError):
    status = HTTPStatus.BAD_REQUEST


class PolicyError(ServiceError):
    """Reopening window or request limit exceeded."""

    status = HTTPStatus.BAD_REQUEST


class OrderStateError(ConflictError):
    """Event not legal from the order's current status."""

    def __init__(self, message: str, current=None, target=None) -> None:
        super().__init__(message)
        self.current = current
        self.target = target
