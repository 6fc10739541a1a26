class ServiceError(Exception):
    """Base error rendered to clients as {"error": message} with status_code."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class UpstreamError(ServiceError):
    """A hosted AI, avatar or storage call failed or returned unusable data."""

    status_code = 502


class PersistenceError(ServiceError):
    status_code = 500
