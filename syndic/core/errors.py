from __future__ import annotations


class ServiceError(ValueError):
    """Business-rule violation carrying the HTTP status the API layer should answer with."""

    status_code = 400


class AuthenticationError(ServiceError):
    status_code = 401


class PermissionDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


def status_for(exc: Exception) -> int:
    if isinstance(exc, ServiceError):
        return exc.status_code
    if isinstance(exc, ValueError):
        return 400
    return 500
